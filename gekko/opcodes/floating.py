import dataclasses
from collections.abc import Callable
from gekko import fields
from gekko.fields import EncodedInstruction
from gekko.fragments import Assign, Const, Expression, Intrinsic, Statement, F64, S32, U32, U64
from gekko.opcodes.base import ExtendedOpcode, Helpers, OpcodeArgs, Xo5Mixin, primary_opcode_mixin
from gekko.opcodes.semantics import (
    bits_to_double, cr_shift, double_to_bits, field_mask, float_compare, fpr, fpscr, record_cr1, set_cr_field,
    single)


FloatOperation = Callable[[Expression, Expression, Expression], Expression]


def float_operand_strings(operands: str, args: OpcodeArgs) -> list[str]:
    registers = {'d': args.rd, 'a': args.ra, 'b': args.rb, 'c': args.rc}
    return [str(registers[operand]) for operand in operands]


def decode_float_operands(operands: str, encoded: EncodedInstruction) -> dict:
    register_fields = {'d': ('rd', fields.D), 'a': ('ra', fields.A), 'b': ('rb', fields.B), 'c': ('rc', fields.C)}
    return {
        register_fields[operand][0]: Helpers.decode_fpr(encoded, register_fields[operand][1])
        for operand in operands}


def encode_float_operands(operands: str, args: OpcodeArgs) -> int:
    register_fields = {'d': (args.rd, fields.D), 'a': (args.ra, fields.A), 'b': (args.rb, fields.B),
                       'c': (args.rc, fields.C)}
    encoded = 0
    for operand in operands:
        register, field = register_fields[operand]
        encoded |= Helpers.encode_register(register, field)
    return encoded


def _source(register) -> Expression | None:
    return None if register is None else fpr(register)


@dataclasses.dataclass(frozen=True)
class _FloatArithmeticOpcode(Xo5Mixin, ExtendedOpcode):
    """A-form arithmetic; ``operands`` lists the register fields in text order."""
    operation: FloatOperation
    operands: str = dataclasses.field(default='dab', kw_only=True)
    single_precision: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return ', '.join(float_operand_strings(self.operands, args))

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            **decode_float_operands(self.operands, encoded), record=Helpers.decode_flag(encoded, fields.RC))

    def encode_args(self, args: OpcodeArgs) -> int:
        return encode_float_operands(self.operands, args) | Helpers.encode_flag(args.record, fields.RC)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        value = self.operation(_source(args.ra), _source(args.rb), _source(args.rc))
        statements: list[Statement] = [Assign(fpr(args.rd), single(value) if self.single_precision else value)]
        if args.record:
            statements.append(record_cr1())
        return statements


@dataclasses.dataclass(frozen=True)
class _FloatUnaryOpcode(primary_opcode_mixin(63), ExtendedOpcode):
    operation: Callable[[Expression], Expression]

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.rd}, {args.rb}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(**decode_float_operands('db', encoded), record=Helpers.decode_flag(encoded, fields.RC))

    def encode_args(self, args: OpcodeArgs) -> int:
        return encode_float_operands('db', args) | Helpers.encode_flag(args.record, fields.RC)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        statements: list[Statement] = [Assign(fpr(args.rd), self.operation(fpr(args.rb)))]
        if args.record:
            statements.append(record_cr1())
        return statements


@dataclasses.dataclass(frozen=True)
class _FloatCompareOpcode(primary_opcode_mixin(63), ExtendedOpcode):
    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{Helpers.cr_field_string(args.crfd)}, {args.ra}, {args.rb}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(crfd=fields.CRFD.extract(encoded), **decode_float_operands('ab', encoded))

    def encode_args(self, args: OpcodeArgs) -> int:
        return fields.CRFD.insert(args.crfd) | encode_float_operands('ab', args)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        return float_compare(args.crfd, fpr(args.ra), fpr(args.rb))


@dataclasses.dataclass(frozen=True)
class _MoveFromFpscrOpcode(primary_opcode_mixin(63), ExtendedOpcode):
    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return str(args.rd)

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(rd=Helpers.decode_fpr(encoded, fields.D), record=Helpers.decode_flag(encoded, fields.RC))

    def encode_args(self, args: OpcodeArgs) -> int:
        return Helpers.encode_register(args.rd, fields.D) | Helpers.encode_flag(args.record, fields.RC)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        statements: list[Statement] = [Assign(fpr(args.rd), bits_to_double(fpscr.cast(U64)))]
        if args.record:
            statements.append(record_cr1())
        return statements


@dataclasses.dataclass(frozen=True)
class _MoveToFpscrFieldsOpcode(primary_opcode_mixin(63), ExtendedOpcode):
    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{Helpers.unsigned_imm_string(args.mask)}, {args.rb}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            mask=fields.FM.extract(encoded),
            rb=Helpers.decode_fpr(encoded, fields.B),
            record=Helpers.decode_flag(encoded, fields.RC))

    def encode_args(self, args: OpcodeArgs) -> int:
        return (
            fields.FM.insert(args.mask) | Helpers.encode_register(args.rb, fields.B) |
            Helpers.encode_flag(args.record, fields.RC))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        mask = field_mask(args.mask)
        source = double_to_bits(fpr(args.rb)).cast(U32)
        if mask == 0xffffffff:
            value = source
        else:
            value = (fpscr & (~mask & 0xffffffff)) | (source & mask)
        statements: list[Statement] = [Assign(fpscr, value)]
        if args.record:
            statements.append(record_cr1())
        return statements


@dataclasses.dataclass(frozen=True)
class _MoveToFpscrImmediateOpcode(primary_opcode_mixin(63), ExtendedOpcode):
    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{Helpers.cr_field_string(args.crfd)}, {Helpers.unsigned_imm_string(args.imm)}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            crfd=fields.CRFD.extract(encoded),
            imm=fields.FPSCR_IMM.extract(encoded),
            record=Helpers.decode_flag(encoded, fields.RC))

    def encode_args(self, args: OpcodeArgs) -> int:
        return (
            fields.CRFD.insert(args.crfd) | fields.FPSCR_IMM.insert(args.imm) |
            Helpers.encode_flag(args.record, fields.RC))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        shift = cr_shift(args.crfd)
        value = (fpscr & (~(0xf << shift) & 0xffffffff)) | Const(args.imm << shift)
        statements: list[Statement] = [Assign(fpscr, value)]
        if args.record:
            statements.append(record_cr1())
        return statements


@dataclasses.dataclass(frozen=True)
class _FpscrBitOpcode(primary_opcode_mixin(63), ExtendedOpcode):
    sets: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return str(args.crbd)

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(crbd=fields.D.extract(encoded), record=Helpers.decode_flag(encoded, fields.RC))

    def encode_args(self, args: OpcodeArgs) -> int:
        return fields.D.insert(args.crbd) | Helpers.encode_flag(args.record, fields.RC)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        bit = 1 << (31 - args.crbd)
        value = fpscr | bit if self.sets else fpscr & (~bit & 0xffffffff)
        statements: list[Statement] = [Assign(fpscr, value)]
        if args.record:
            statements.append(record_cr1())
        return statements


@dataclasses.dataclass(frozen=True)
class _MoveFpscrFieldOpcode(primary_opcode_mixin(63), ExtendedOpcode):
    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{Helpers.cr_field_string(args.crfd)}, {Helpers.cr_field_string(args.crfs)}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(crfd=fields.CRFD.extract(encoded), crfs=fields.CRFS.extract(encoded))

    def encode_args(self, args: OpcodeArgs) -> int:
        return fields.CRFD.insert(args.crfd) | fields.CRFS.insert(args.crfs)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        shift = cr_shift(args.crfs)
        return [set_cr_field(args.crfd, (fpscr >> shift if shift else fpscr) & 0xf)]


def _to_integer_word(function: str) -> Callable[[Expression], Expression]:
    def operation(source: Expression) -> Expression:
        return bits_to_double(Intrinsic(function, (source,), S32).cast(U32).cast(U64))
    return operation


def _fabs(value: Expression) -> Expression:
    return Intrinsic('fabs', (value,), F64)


def _sqrt(value: Expression) -> Expression:
    return Intrinsic('sqrt', (value,), F64)


def _one() -> Const:
    return Const(1.0, F64)


def _select(a: Expression, b: Expression, c: Expression) -> Expression:
    return a.ge(0.0).select(c, b, F64)


def _arithmetic(name: str, extended: int, operation: FloatOperation, operands: str = 'dab') -> tuple:
    return (
        _FloatArithmeticOpcode(f'{name}s', 59, extended, operation, operands=operands, single_precision=True),
        _FloatArithmeticOpcode(name, 63, extended, operation, operands=operands))


class FloatOpcodes:
    fdivs, fdiv = _arithmetic('fdiv', 18, lambda a, b, c: a / b)
    fsubs, fsub = _arithmetic('fsub', 20, lambda a, b, c: a - b)
    fadds, fadd = _arithmetic('fadd', 21, lambda a, b, c: a + b)
    fsqrts, fsqrt = _arithmetic('fsqrt', 22, lambda a, b, c: _sqrt(b), operands='db')
    fmuls, fmul = _arithmetic('fmul', 25, lambda a, b, c: a * c, operands='dac')
    fmsubs, fmsub = _arithmetic('fmsub', 28, lambda a, b, c: a * c - b, operands='dacb')
    fmadds, fmadd = _arithmetic('fmadd', 29, lambda a, b, c: a * c + b, operands='dacb')
    fnmsubs, fnmsub = _arithmetic('fnmsub', 30, lambda a, b, c: -(a * c - b), operands='dacb')
    fnmadds, fnmadd = _arithmetic('fnmadd', 31, lambda a, b, c: -(a * c + b), operands='dacb')
    fres = _FloatArithmeticOpcode('fres', 59, 24, lambda a, b, c: _one() / b, operands='db', single_precision=True)
    fsel = _FloatArithmeticOpcode('fsel', 63, 23, _select, operands='dacb')
    frsqrte = _FloatArithmeticOpcode('frsqrte', 63, 26, lambda a, b, c: _one() / _sqrt(b), operands='db')
    fcmpu = _FloatCompareOpcode('fcmpu', 0)
    frsp = _FloatUnaryOpcode('frsp', 12, single)
    fctiw = _FloatUnaryOpcode('fctiw', 14, _to_integer_word('fctiw'))
    fctiwz = _FloatUnaryOpcode('fctiwz', 15, _to_integer_word('fctiwz'))
    fcmpo = _FloatCompareOpcode('fcmpo', 32)
    mtfsb1 = _FpscrBitOpcode('mtfsb1', 38, sets=True)
    fneg = _FloatUnaryOpcode('fneg', 40, lambda b: -b)
    mcrfs = _MoveFpscrFieldOpcode('mcrfs', 64)
    mtfsb0 = _FpscrBitOpcode('mtfsb0', 70)
    fmr = _FloatUnaryOpcode('fmr', 72, lambda b: b)
    mtfsfi = _MoveToFpscrImmediateOpcode('mtfsfi', 134)
    fnabs = _FloatUnaryOpcode('fnabs', 136, lambda b: -_fabs(b))
    fabs = _FloatUnaryOpcode('fabs', 264, _fabs)
    mffs = _MoveFromFpscrOpcode('mffs', 583)
    mtfsf = _MoveToFpscrFieldsOpcode('mtfsf', 711)
