"""Paired-single instructions.

Slot 0 of a paired register lives in ``fN`` and slot 1 in ``ps1[N]``.
Quantized loads and stores go through the runtime ``psq_load``/``psq_store``
helpers, which take the guest effective address and the GQR value.
"""
import dataclasses
from collections.abc import Callable
from gekko import fields
from gekko.fields import EncodedInstruction
from gekko.fragments import Assign, Const, Declare, Expression, Intrinsic, Invoke, Statement, Var, F64, U32
from gekko.opcodes.base import ExtendedOpcode, Helpers, Opcode, OpcodeArgs, Xo5Mixin, Xo6Mixin, primary_opcode_mixin
from gekko.opcodes.floating import decode_float_operands, encode_float_operands, float_operand_strings
from gekko.opcodes.semantics import (
    d_form_ea, declare_ea, float_compare, fpr, gpr, offset, ps1, record_cr1, single, x_form_ea)


Pair = tuple[Expression, Expression]
PairedOperation = Callable[[Pair, Pair, Pair], Pair]


def quantization_register(index: int) -> Var:
    return Var(f'gqr{index}', U32)


def _pair(register) -> Pair | None:
    return None if register is None else (fpr(register), ps1(register))


def _quantized_load(args: OpcodeArgs, ea: Expression) -> list[Statement]:
    gqr = quantization_register(args.i)
    second = Const(1.0, F64) if args.w else Intrinsic('psq_load', (ea, gqr, Const(1)), F64)
    return [
        Assign(fpr(args.rd), Intrinsic('psq_load', (ea, gqr, Const(0)), F64)),
        Assign(ps1(args.rd), second)
    ]


def _quantized_store(args: OpcodeArgs, ea: Expression) -> list[Statement]:
    gqr = quantization_register(args.i)
    return [Invoke('psq_store', (ea, fpr(args.rd), ps1(args.rd), gqr, Const(args.w)))]


@dataclasses.dataclass(frozen=True)
class _QuantizedOpcode(Opcode):
    access: Callable[[OpcodeArgs, Expression], list[Statement]]
    update: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.rd}, {Helpers.memory_operand_string(args.imm, args.ra)}, {args.w}, {args.i}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            rd=Helpers.decode_fpr(encoded, fields.D),
            ra=Helpers.decode_gpr(encoded, fields.A),
            w=fields.PS_W.extract(encoded),
            i=fields.PS_I.extract(encoded),
            imm=fields.PS_D.extract(encoded))

    def encode_args(self, args: OpcodeArgs) -> int:
        return (
            Helpers.encode_register(args.rd, fields.D) | Helpers.encode_register(args.ra, fields.A) |
            fields.PS_W.insert(args.w) | fields.PS_I.insert(args.i) | fields.PS_D.insert(args.imm))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        if self.update:
            ea = declare_ea(offset(gpr(args.ra), args.imm))
            return [ea, *self.access(args, ea.var), Assign(gpr(args.ra), ea.var)]
        return self.access(args, d_form_ea(args.ra, args.imm))


@dataclasses.dataclass(frozen=True)
class _IndexedQuantizedOpcode(Xo6Mixin, primary_opcode_mixin(4), ExtendedOpcode):
    access: Callable[[OpcodeArgs, Expression], list[Statement]]
    update: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.rd}, {Helpers.base_register_string(args.ra)}, {args.rb}, {args.w}, {args.i}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            rd=Helpers.decode_fpr(encoded, fields.D),
            ra=Helpers.decode_gpr(encoded, fields.A),
            rb=Helpers.decode_gpr(encoded, fields.B),
            w=fields.PSX_W.extract(encoded),
            i=fields.PSX_I.extract(encoded))

    def encode_args(self, args: OpcodeArgs) -> int:
        return (
            Helpers.encode_register(args.rd, fields.D) | Helpers.encode_register(args.ra, fields.A) |
            Helpers.encode_register(args.rb, fields.B) | fields.PSX_W.insert(args.w) | fields.PSX_I.insert(args.i))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        if self.update:
            ea = declare_ea(gpr(args.ra) + gpr(args.rb))
            return [ea, *self.access(args, ea.var), Assign(gpr(args.ra), ea.var)]
        return self.access(args, x_form_ea(args.ra, args.rb))


def _assign_pair(args: OpcodeArgs, values: Pair) -> list[Statement]:
    first = Declare('p0', F64, values[0])
    second = Declare('p1', F64, values[1])
    statements: list[Statement] = [
        first,
        second,
        Assign(fpr(args.rd), first.var),
        Assign(ps1(args.rd), second.var)
    ]
    if args.record:
        statements.append(record_cr1())
    return statements


@dataclasses.dataclass(frozen=True)
class _PairedArithmeticOpcode(Xo5Mixin, primary_opcode_mixin(4), ExtendedOpcode):
    operation: PairedOperation
    operands: str = dataclasses.field(default='dab', kw_only=True)
    rounds: bool = dataclasses.field(default=True, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return ', '.join(float_operand_strings(self.operands, args))

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            **decode_float_operands(self.operands, encoded), record=Helpers.decode_flag(encoded, fields.RC))

    def encode_args(self, args: OpcodeArgs) -> int:
        return encode_float_operands(self.operands, args) | Helpers.encode_flag(args.record, fields.RC)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        first, second = self.operation(_pair(args.ra), _pair(args.rb), _pair(args.rc))
        if self.rounds:
            first, second = single(first), single(second)
        return _assign_pair(args, (first, second))


@dataclasses.dataclass(frozen=True)
class _PairedMoveOpcode(primary_opcode_mixin(4), ExtendedOpcode):
    operation: PairedOperation
    operands: str = dataclasses.field(default='db', kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return ', '.join(float_operand_strings(self.operands, args))

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            **decode_float_operands(self.operands, encoded), record=Helpers.decode_flag(encoded, fields.RC))

    def encode_args(self, args: OpcodeArgs) -> int:
        return encode_float_operands(self.operands, args) | Helpers.encode_flag(args.record, fields.RC)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        return _assign_pair(args, self.operation(_pair(args.ra), _pair(args.rb), _pair(args.rc)))


@dataclasses.dataclass(frozen=True)
class _PairedCompareOpcode(primary_opcode_mixin(4), ExtendedOpcode):
    slot: int

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{Helpers.cr_field_string(args.crfd)}, {args.ra}, {args.rb}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(crfd=fields.CRFD.extract(encoded), **decode_float_operands('ab', encoded))

    def encode_args(self, args: OpcodeArgs) -> int:
        return fields.CRFD.insert(args.crfd) | encode_float_operands('ab', args)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        return float_compare(args.crfd, _pair(args.ra)[self.slot], _pair(args.rb)[self.slot])


def _elementwise(operation: Callable[..., Expression]) -> PairedOperation:
    def apply(a: Pair | None, b: Pair | None, c: Pair | None) -> Pair:
        return tuple(
            operation(*(None if pair is None else pair[slot] for pair in (a, b, c))) for slot in range(2))
    return apply


def _fabs(value: Expression) -> Expression:
    return Intrinsic('fabs', (value,), F64)


def _reciprocal(value: Expression) -> Expression:
    return Const(1.0, F64) / value


def _reciprocal_sqrt(value: Expression) -> Expression:
    return Const(1.0, F64) / Intrinsic('sqrt', (value,), F64)


class PairedOpcodes:
    psq_l = _QuantizedOpcode('psq_l', 56, _quantized_load)
    psq_lu = _QuantizedOpcode('psq_lu', 57, _quantized_load, update=True)
    psq_st = _QuantizedOpcode('psq_st', 60, _quantized_store)
    psq_stu = _QuantizedOpcode('psq_stu', 61, _quantized_store, update=True)
    psq_lx = _IndexedQuantizedOpcode('psq_lx', 6, _quantized_load)
    psq_stx = _IndexedQuantizedOpcode('psq_stx', 7, _quantized_store)
    psq_lux = _IndexedQuantizedOpcode('psq_lux', 38, _quantized_load, update=True)
    psq_stux = _IndexedQuantizedOpcode('psq_stux', 39, _quantized_store, update=True)
    ps_sum0 = _PairedArithmeticOpcode(
        'ps_sum0', 10, lambda a, b, c: (a[0] + b[1], c[1]), operands='dacb')
    ps_sum1 = _PairedArithmeticOpcode(
        'ps_sum1', 11, lambda a, b, c: (c[0], a[0] + b[1]), operands='dacb')
    ps_muls0 = _PairedArithmeticOpcode(
        'ps_muls0', 12, lambda a, b, c: (a[0] * c[0], a[1] * c[0]), operands='dac')
    ps_muls1 = _PairedArithmeticOpcode(
        'ps_muls1', 13, lambda a, b, c: (a[0] * c[1], a[1] * c[1]), operands='dac')
    ps_madds0 = _PairedArithmeticOpcode(
        'ps_madds0', 14, lambda a, b, c: (a[0] * c[0] + b[0], a[1] * c[0] + b[1]), operands='dacb')
    ps_madds1 = _PairedArithmeticOpcode(
        'ps_madds1', 15, lambda a, b, c: (a[0] * c[1] + b[0], a[1] * c[1] + b[1]), operands='dacb')
    ps_div = _PairedArithmeticOpcode('ps_div', 18, _elementwise(lambda a, b, c: a / b))
    ps_sub = _PairedArithmeticOpcode('ps_sub', 20, _elementwise(lambda a, b, c: a - b))
    ps_add = _PairedArithmeticOpcode('ps_add', 21, _elementwise(lambda a, b, c: a + b))
    ps_sel = _PairedArithmeticOpcode(
        'ps_sel', 23, _elementwise(lambda a, b, c: a.ge(0.0).select(c, b, F64)), operands='dacb', rounds=False)
    ps_res = _PairedArithmeticOpcode('ps_res', 24, _elementwise(lambda a, b, c: _reciprocal(b)), operands='db')
    ps_mul = _PairedArithmeticOpcode('ps_mul', 25, _elementwise(lambda a, b, c: a * c), operands='dac')
    ps_rsqrte = _PairedArithmeticOpcode(
        'ps_rsqrte', 26, _elementwise(lambda a, b, c: _reciprocal_sqrt(b)), operands='db')
    ps_msub = _PairedArithmeticOpcode('ps_msub', 28, _elementwise(lambda a, b, c: a * c - b), operands='dacb')
    ps_madd = _PairedArithmeticOpcode('ps_madd', 29, _elementwise(lambda a, b, c: a * c + b), operands='dacb')
    ps_nmsub = _PairedArithmeticOpcode(
        'ps_nmsub', 30, _elementwise(lambda a, b, c: -(a * c - b)), operands='dacb')
    ps_nmadd = _PairedArithmeticOpcode(
        'ps_nmadd', 31, _elementwise(lambda a, b, c: -(a * c + b)), operands='dacb')
    ps_cmpu0 = _PairedCompareOpcode('ps_cmpu0', 0, 0)
    ps_cmpo0 = _PairedCompareOpcode('ps_cmpo0', 32, 0)
    ps_neg = _PairedMoveOpcode('ps_neg', 40, _elementwise(lambda a, b, c: -b))
    ps_cmpu1 = _PairedCompareOpcode('ps_cmpu1', 64, 1)
    ps_mr = _PairedMoveOpcode('ps_mr', 72, _elementwise(lambda a, b, c: b))
    ps_cmpo1 = _PairedCompareOpcode('ps_cmpo1', 96, 1)
    ps_nabs = _PairedMoveOpcode('ps_nabs', 136, _elementwise(lambda a, b, c: -_fabs(b)))
    ps_abs = _PairedMoveOpcode('ps_abs', 264, _elementwise(lambda a, b, c: _fabs(b)))
    ps_merge00 = _PairedMoveOpcode('ps_merge00', 528, lambda a, b, c: (a[0], b[0]), operands='dab')
    ps_merge01 = _PairedMoveOpcode('ps_merge01', 560, lambda a, b, c: (a[0], b[1]), operands='dab')
    ps_merge10 = _PairedMoveOpcode('ps_merge10', 592, lambda a, b, c: (a[1], b[0]), operands='dab')
    ps_merge11 = _PairedMoveOpcode('ps_merge11', 624, lambda a, b, c: (a[1], b[1]), operands='dab')
