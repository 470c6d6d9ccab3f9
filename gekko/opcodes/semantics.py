"""Building blocks shared by the opcode emitters.

Everything here returns fragment nodes over the execution context names:
``r0..r31`` (u32), ``f0..f31`` (f64, paired-single slot 0), ``ps1[]`` (slot 1),
``cr``, ``xer``, ``ctr``, ``lr``, ``msr``, ``fpscr``, ``sr[]``, ``tb[]`` and
``spr[]``.
"""
from gekko import registers
from gekko.fragments import (
    Address, Assign, Const, Declare, Expression, Index, Intrinsic, Statement, Var,
    F32, F64, S32, U32, U64)
from gekko.registers import Register


cr = Var('cr')
xer = Var('xer')
ctr = Var('ctr')
lr = Var('lr')
msr = Var('msr')
fpscr = Var('fpscr')
reserve = Var('reserve')

ALIGNED_ADDRESS_MASK = 0xfffffffc
CACHE_LINE_MASK = 0xffffffe0
CACHE_LINE_SIZE = 32


def gpr(register: Register | int) -> Var:
    index = register if isinstance(register, int) else register.index
    return Var(f'r{index}', U32)


def fpr(register: Register | int) -> Var:
    index = register if isinstance(register, int) else register.index
    return Var(f'f{index}', F64)


def ps1(register: Register | int) -> Index:
    index = register if isinstance(register, int) else register.index
    return Index('ps1', Const(index, S32), F64)


def segment_register(index: Expression | int) -> Index:
    return Index('sr', index if isinstance(index, Expression) else Const(index, S32), U32)


def time_base(index: int) -> Index:
    return Index('tb', Const(index, S32), U32)


def special_register(number: int) -> Var | Index:
    if number in registers.SCALAR_SPRS:
        return Var(registers.SCALAR_SPRS[number], U32)
    if number in registers.TIME_BASE_SPRS:
        return time_base(registers.TIME_BASE_SPRS[number])
    return Index('spr', Const(number, S32), U32)


def signed(expression: Expression) -> Expression:
    return expression.cast(S32)


def is_negative(expression: Expression) -> Expression:
    return signed(expression).lt(0)


def carry_bit() -> Expression:
    return (xer >> 29) & 1


def rotate_left(value: Expression, amount: int | Expression) -> Expression:
    if isinstance(amount, int):
        return value if amount == 0 else (value << amount) | (value >> (32 - amount))
    return (value << amount) | (value >> ((Const(32) - amount) & 0x1f))


def rotate_mask(mb: int, me: int) -> int:
    if mb <= me:
        return ((1 << (32 - mb)) - 1) & ~((1 << (31 - me)) - 1)
    return (((1 << (32 - mb)) - 1) | ~((1 << (31 - me)) - 1)) & 0xffffffff


def field_mask(field_selector: int) -> int:
    """Expand an 8-bit field selector (CRM/FM, MSB first) to a 32-bit mask."""
    mask = 0
    for field in range(8):
        if field_selector & (0x80 >> field):
            mask |= 0xf << (28 - 4 * field)
    return mask


def cr_shift(field: int) -> int:
    return 28 - 4 * field


def set_cr_field(field: int, bits: Expression) -> Assign:
    shift = cr_shift(field)
    kept = cr & (~(0xf << shift) & 0xffffffff)
    return Assign(cr, kept | (bits << shift if shift else bits))


def cr_field(field: int) -> Expression:
    shift = cr_shift(field)
    return (cr >> shift if shift else cr) & 0xf


def cr_bit(bit: int) -> Expression:
    return (cr >> (31 - bit)) & 1 if bit != 31 else cr & 1


def set_cr_bit(bit: int, value: Expression) -> Assign:
    shift = 31 - bit
    return Assign(cr, (cr & (~(1 << shift) & 0xffffffff)) | ((value & 1) << shift if shift else value & 1))


def compare_bits(left: Expression, right: Expression | int) -> Expression:
    ordering = left.lt(right).select(Const(8), left.gt(right).select(Const(4), Const(2)))
    return ordering | (xer >> 31)


def record_cr0(result: Expression) -> Assign:
    return set_cr_field(0, compare_bits(signed(result), Const(0, S32)))


def record_cr1() -> Assign:
    return set_cr_field(1, fpscr >> 28)


def set_carry(condition: Expression) -> Assign:
    return Assign(xer, (xer & (~registers.XER_CA & 0xffffffff)) | condition.select(Const(registers.XER_CA), Const(0)))


def clear_carry() -> Assign:
    return Assign(xer, xer & (~registers.XER_CA & 0xffffffff))


def set_overflow(condition: Expression) -> Assign:
    return Assign(xer, condition.select(
        xer | (registers.XER_SO | registers.XER_OV),
        xer & (~registers.XER_OV & 0xffffffff)))


def d_form_address(base: Register, displacement: int) -> Address:
    if base.index == 0:
        return Address(Const(displacement & 0xffffffff), translated=True)
    return Address(offset(gpr(base), displacement))


def x_form_address(base: Register, index: Register) -> Address:
    if base.index == 0:
        return Address(gpr(index), translated=True)
    return Address(gpr(base) + gpr(index))


def x_form_ea(base: Register, index: Register) -> Expression:
    return gpr(index) if base.index == 0 else gpr(base) + gpr(index)


def d_form_ea(base: Register, displacement: int) -> Expression:
    if base.index == 0:
        return Const(displacement & 0xffffffff)
    return offset(gpr(base), displacement)


def offset(value: Expression, displacement: int) -> Expression:
    return value if displacement == 0 else value + displacement


def declare_ea(value: Expression) -> Declare:
    return Declare('ea', U32, value)


def single(value: Expression) -> Expression:
    """Round a double result to single precision and widen it back."""
    return value.cast(F32).cast(F64)


def bits_to_single(value: Expression) -> Expression:
    return Intrinsic('bits_f32', (value,), F32).cast(F64)


def single_to_bits(value: Expression) -> Expression:
    return Intrinsic('f32_bits', (value.cast(F32),), U32)


def bits_to_double(value: Expression) -> Expression:
    return Intrinsic('bits_f64', (value,), F64)


def double_to_bits(value: Expression) -> Expression:
    return Intrinsic('f64_bits', (value,), U64)


def is_nan(value: Expression) -> Expression:
    return value.ne(value)


def float_compare_bits(left: Expression, right: Expression) -> Expression:
    ordered = left.lt(right).select(Const(8), left.gt(right).select(Const(4), Const(2)))
    return is_nan(left).logical_or(is_nan(right)).select(Const(1), ordered)


def float_compare(field: int, left: Expression, right: Expression) -> list[Statement]:
    result = Declare('c', U32, float_compare_bits(left, right))
    return [
        result,
        set_cr_field(field, result.var),
        Assign(fpscr, (fpscr & 0xffff0fff) | (result.var << 12))
    ]


def wide(value: Expression) -> Expression:
    return value.cast(U64)
