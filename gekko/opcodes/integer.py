import dataclasses
from collections.abc import Callable
from gekko import fields, registers
from gekko.fields import EncodedInstruction
from gekko.fragments import Assign, Const, Declare, Expression, Intrinsic, Nop, Statement, S8, S16, S32, S64, U32, U64
from gekko.opcodes.base import (
    ExtendedOpcode, Helpers, Opcode, OpcodeArgs, OperationEmitter, PseudoOpcode, Xo9Mixin, primary_opcode_mixin)
from gekko.opcodes.semantics import (
    carry_bit, clear_carry, compare_bits, gpr, is_negative, record_cr0, set_carry, set_cr_field, set_overflow,
    signed, wide)


class _RdRaSimmCoderMixin:
    @classmethod
    def decode_args(cls, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            rd=Helpers.decode_gpr(encoded, fields.D),
            ra=Helpers.decode_gpr(encoded, fields.A),
            imm=fields.SIMM.extract(encoded))

    @classmethod
    def encode_args(cls, args: OpcodeArgs) -> int:
        return (
            Helpers.encode_register(args.rd, fields.D) | Helpers.encode_register(args.ra, fields.A) |
            fields.SIMM.insert(args.imm))


class _RdRaUimmCoderMixin:
    @classmethod
    def decode_args(cls, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            rd=Helpers.decode_gpr(encoded, fields.D),
            ra=Helpers.decode_gpr(encoded, fields.A),
            imm=fields.UIMM.extract(encoded))

    @classmethod
    def encode_args(cls, args: OpcodeArgs) -> int:
        return (
            Helpers.encode_register(args.rd, fields.D) | Helpers.encode_register(args.ra, fields.A) |
            fields.UIMM.insert(args.imm))


@dataclasses.dataclass(frozen=True)
class _ImmediateArithmeticOpcode(_RdRaSimmCoderMixin, Opcode):
    operation: OperationEmitter

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.rd}, {args.ra}, {Helpers.signed_imm_string(args.imm)}'

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        return self.operation(args)


@dataclasses.dataclass(frozen=True)
class _ImmediateLogicalOpcode(_RdRaUimmCoderMixin, Opcode):
    operation: Callable[[Expression, int], Expression]
    shifted: bool = dataclasses.field(default=False, kw_only=True)
    records: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.ra}, {args.rd}, {Helpers.unsigned_imm_string(args.imm)}'

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        imm = args.imm << 16 if self.shifted else args.imm
        statements = [Assign(gpr(args.ra), self.operation(gpr(args.rd), imm))]
        if self.records:
            statements.append(record_cr0(gpr(args.ra)))
        return statements


@dataclasses.dataclass(frozen=True)
class _XoArithmeticOpcode(Xo9Mixin, primary_opcode_mixin(31), ExtendedOpcode):
    operation: OperationEmitter
    unary: bool = dataclasses.field(default=False, kw_only=True)
    overflow: bool = dataclasses.field(default=True, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        if self.unary:
            return f'{args.rd}, {args.ra}'
        return f'{args.rd}, {args.ra}, {args.rb}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            rd=Helpers.decode_gpr(encoded, fields.D),
            ra=Helpers.decode_gpr(encoded, fields.A),
            rb=None if self.unary else Helpers.decode_gpr(encoded, fields.B),
            oe=self.overflow and Helpers.decode_flag(encoded, fields.OE),
            record=Helpers.decode_flag(encoded, fields.RC))

    def encode_args(self, args: OpcodeArgs) -> int:
        encoded = Helpers.encode_register(args.rd, fields.D) | Helpers.encode_register(args.ra, fields.A)
        if not self.unary:
            encoded |= Helpers.encode_register(args.rb, fields.B)
        return encoded | Helpers.encode_flag(args.oe, fields.OE) | Helpers.encode_flag(args.record, fields.RC)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        return self.operation(args)


class _RaRsRbCoderMixin:
    @classmethod
    def decode_args(cls, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            rd=Helpers.decode_gpr(encoded, fields.D),
            ra=Helpers.decode_gpr(encoded, fields.A),
            rb=Helpers.decode_gpr(encoded, fields.B),
            record=Helpers.decode_flag(encoded, fields.RC))

    @classmethod
    def encode_args(cls, args: OpcodeArgs) -> int:
        return (
            Helpers.encode_register(args.rd, fields.D) | Helpers.encode_register(args.ra, fields.A) |
            Helpers.encode_register(args.rb, fields.B) | Helpers.encode_flag(args.record, fields.RC))

    @classmethod
    def args_to_string(cls, args: OpcodeArgs, address: int) -> str:
        return f'{args.ra}, {args.rd}, {args.rb}'


@dataclasses.dataclass(frozen=True)
class _LogicalOpcode(_RaRsRbCoderMixin, primary_opcode_mixin(31), ExtendedOpcode):
    operation: Callable[[Expression, Expression], Expression]

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        destination = gpr(args.ra)
        statements = [Assign(destination, self.operation(gpr(args.rd), gpr(args.rb)))]
        if args.record:
            statements.append(record_cr0(destination))
        return statements


@dataclasses.dataclass(frozen=True)
class _ShiftOpcode(_RaRsRbCoderMixin, primary_opcode_mixin(31), ExtendedOpcode):
    operation: OperationEmitter

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        statements = self.operation(args)
        if args.record:
            statements.append(record_cr0(gpr(args.ra)))
        return statements


@dataclasses.dataclass(frozen=True)
class _UnaryLogicalOpcode(primary_opcode_mixin(31), ExtendedOpcode):
    operation: Callable[[Expression], Expression]

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.ra}, {args.rd}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            rd=Helpers.decode_gpr(encoded, fields.D),
            ra=Helpers.decode_gpr(encoded, fields.A),
            record=Helpers.decode_flag(encoded, fields.RC))

    def encode_args(self, args: OpcodeArgs) -> int:
        return (
            Helpers.encode_register(args.rd, fields.D) | Helpers.encode_register(args.ra, fields.A) |
            Helpers.encode_flag(args.record, fields.RC))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        destination = gpr(args.ra)
        statements = [Assign(destination, self.operation(gpr(args.rd)))]
        if args.record:
            statements.append(record_cr0(destination))
        return statements


@dataclasses.dataclass(frozen=True)
class _ShiftImmediateOpcode(primary_opcode_mixin(31), ExtendedOpcode):
    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.ra}, {args.rd}, {args.sh}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            rd=Helpers.decode_gpr(encoded, fields.D),
            ra=Helpers.decode_gpr(encoded, fields.A),
            sh=fields.SH.extract(encoded),
            record=Helpers.decode_flag(encoded, fields.RC))

    def encode_args(self, args: OpcodeArgs) -> int:
        return (
            Helpers.encode_register(args.rd, fields.D) | Helpers.encode_register(args.ra, fields.A) |
            fields.SH.insert(args.sh) | Helpers.encode_flag(args.record, fields.RC))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        source = gpr(args.rd)
        destination = gpr(args.ra)
        lost_bits = (1 << args.sh) - 1
        statements = [
            set_carry(is_negative(source).logical_and((source & lost_bits).ne(0)))
            if lost_bits else clear_carry(),
            Assign(destination, (signed(source) >> args.sh).cast(U32) if args.sh else source)
        ]
        if args.record:
            statements.append(record_cr0(destination))
        return statements


@dataclasses.dataclass(frozen=True)
class _CompareOpcode(primary_opcode_mixin(31), ExtendedOpcode):
    unsigned: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{Helpers.cr_field_string(args.crfd)}, {args.l}, {args.ra}, {args.rb}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            crfd=fields.CRFD.extract(encoded),
            l=fields.L.extract(encoded),
            ra=Helpers.decode_gpr(encoded, fields.A),
            rb=Helpers.decode_gpr(encoded, fields.B))

    def encode_args(self, args: OpcodeArgs) -> int:
        return (
            fields.CRFD.insert(args.crfd) | fields.L.insert(args.l) | Helpers.encode_register(args.ra, fields.A) |
            Helpers.encode_register(args.rb, fields.B))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        left, right = gpr(args.ra), gpr(args.rb)
        if not self.unsigned:
            left, right = signed(left), signed(right)
        return [set_cr_field(args.crfd, compare_bits(left, right))]


@dataclasses.dataclass(frozen=True)
class _CompareImmediateOpcode(Opcode):
    unsigned: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        imm = Helpers.unsigned_imm_string(args.imm) if self.unsigned else Helpers.signed_imm_string(args.imm)
        return f'{Helpers.cr_field_string(args.crfd)}, {args.l}, {args.ra}, {imm}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            crfd=fields.CRFD.extract(encoded),
            l=fields.L.extract(encoded),
            ra=Helpers.decode_gpr(encoded, fields.A),
            imm=(fields.UIMM if self.unsigned else fields.SIMM).extract(encoded))

    def encode_args(self, args: OpcodeArgs) -> int:
        return (
            fields.CRFD.insert(args.crfd) | fields.L.insert(args.l) | Helpers.encode_register(args.ra, fields.A) |
            fields.UIMM.insert(args.imm))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        if self.unsigned:
            return [set_cr_field(args.crfd, compare_bits(gpr(args.ra), Const(args.imm)))]
        return [set_cr_field(args.crfd, compare_bits(signed(gpr(args.ra)), Const(args.imm, S32)))]


def _add_overflow(a: Expression, b: Expression, result: Expression) -> Expression:
    return is_negative((a ^ result) & (b ^ result))


def _xo_result(
        args: OpcodeArgs,
        value: Expression,
        overflow: Callable[[Expression], Expression] | None) -> list[Statement]:
    destination = gpr(args.rd)
    if args.oe:
        result = Declare('result', U32, value)
        statements = [result, set_overflow(overflow(result.var)), Assign(destination, result.var)]
    else:
        statements = [Assign(destination, value)]
    if args.record:
        statements.append(record_cr0(destination))
    return statements


def _carrying_add(
        args: OpcodeArgs,
        a: Expression,
        b: Expression,
        carry_in: Expression | None,
        destination: Expression | None = None,
        record: bool | None = None) -> list[Statement]:
    destination = destination if destination is not None else gpr(args.rd)
    total = wide(a) + wide(b)
    if carry_in is not None:
        total = total + wide(carry_in)
    carried = Declare('sum', U64, total)
    result = carried.var.cast(U32)
    statements: list[Statement] = [carried]
    if args.oe:
        statements.append(set_overflow(_add_overflow(a, b, result)))
    statements.append(set_carry((carried.var >> 32).ne(0)))
    statements.append(Assign(destination, result))
    if args.record if record is None else record:
        statements.append(record_cr0(destination))
    return statements


def _add(args: OpcodeArgs) -> list[Statement]:
    a, b = gpr(args.ra), gpr(args.rb)
    return _xo_result(args, a + b, lambda result: _add_overflow(a, b, result))


def _subf(args: OpcodeArgs) -> list[Statement]:
    a, b = gpr(args.ra), gpr(args.rb)
    return _xo_result(args, b - a, lambda result: _add_overflow(~a, b, result))


def _neg(args: OpcodeArgs) -> list[Statement]:
    a = gpr(args.ra)
    return _xo_result(args, -a, lambda result: a.eq(0x80000000))


def _mullw(args: OpcodeArgs) -> list[Statement]:
    a, b = gpr(args.ra), gpr(args.rb)
    product = signed(a).cast(S64) * signed(b).cast(S64)
    return _xo_result(args, a * b, lambda result: product.ne(signed(result).cast(S64)))


def _mulhw(args: OpcodeArgs) -> list[Statement]:
    product = signed(gpr(args.ra)).cast(S64) * signed(gpr(args.rb)).cast(S64)
    return _xo_result(args, (product >> 32).cast(U32), None)


def _mulhwu(args: OpcodeArgs) -> list[Statement]:
    product = wide(gpr(args.ra)) * wide(gpr(args.rb))
    return _xo_result(args, (product >> 32).cast(U32), None)


def _divw(args: OpcodeArgs) -> list[Statement]:
    a, b = gpr(args.ra), gpr(args.rb)
    undefined = b.eq(0).logical_or(a.eq(0x80000000).logical_and(b.eq(0xffffffff)))
    quotient = (signed(a) / signed(b)).cast(U32)
    value = undefined.select(is_negative(a).select(Const(0xffffffff), Const(0)), quotient)
    return _xo_result(args, value, lambda result: undefined)


def _divwu(args: OpcodeArgs) -> list[Statement]:
    a, b = gpr(args.ra), gpr(args.rb)
    return _xo_result(args, b.eq(0).select(Const(0), a / b), lambda result: b.eq(0))


def _addc(args: OpcodeArgs) -> list[Statement]:
    return _carrying_add(args, gpr(args.ra), gpr(args.rb), None)


def _adde(args: OpcodeArgs) -> list[Statement]:
    return _carrying_add(args, gpr(args.ra), gpr(args.rb), carry_bit())


def _addme(args: OpcodeArgs) -> list[Statement]:
    return _carrying_add(args, gpr(args.ra), Const(0xffffffff), carry_bit())


def _addze(args: OpcodeArgs) -> list[Statement]:
    return _carrying_add(args, gpr(args.ra), Const(0), carry_bit())


def _subfc(args: OpcodeArgs) -> list[Statement]:
    return _carrying_add(args, ~gpr(args.ra), gpr(args.rb), Const(1))


def _subfe(args: OpcodeArgs) -> list[Statement]:
    return _carrying_add(args, ~gpr(args.ra), gpr(args.rb), carry_bit())


def _subfme(args: OpcodeArgs) -> list[Statement]:
    return _carrying_add(args, ~gpr(args.ra), Const(0xffffffff), carry_bit())


def _subfze(args: OpcodeArgs) -> list[Statement]:
    return _carrying_add(args, ~gpr(args.ra), Const(0), carry_bit())


def _addi(args: OpcodeArgs) -> list[Statement]:
    if args.ra.index == 0:
        return [Assign(gpr(args.rd), Const(args.imm, S32))]
    return [Assign(gpr(args.rd), gpr(args.ra) + args.imm)]


def _addis(args: OpcodeArgs) -> list[Statement]:
    shifted = (args.imm << 16) & 0xffffffff
    if args.ra.index == 0:
        return [Assign(gpr(args.rd), Const(shifted))]
    return [Assign(gpr(args.rd), gpr(args.ra) + Const(shifted))]


def _addic(args: OpcodeArgs) -> list[Statement]:
    return _carrying_add(args, gpr(args.ra), Const(args.imm & 0xffffffff), None, record=False)


def _addic_record(args: OpcodeArgs) -> list[Statement]:
    return _carrying_add(args, gpr(args.ra), Const(args.imm & 0xffffffff), None, record=True)


def _subfic(args: OpcodeArgs) -> list[Statement]:
    return _carrying_add(args, ~gpr(args.ra), Const(args.imm & 0xffffffff), Const(1), record=False)


def _mulli(args: OpcodeArgs) -> list[Statement]:
    return [Assign(gpr(args.rd), gpr(args.ra) * Const(args.imm & 0xffffffff))]


def _slw(args: OpcodeArgs) -> list[Statement]:
    source, amount = gpr(args.rd), gpr(args.rb)
    return [Assign(gpr(args.ra), (amount & 0x20).ne(0).select(Const(0), source << (amount & 0x1f)))]


def _srw(args: OpcodeArgs) -> list[Statement]:
    source, amount = gpr(args.rd), gpr(args.rb)
    return [Assign(gpr(args.ra), (amount & 0x20).ne(0).select(Const(0), source >> (amount & 0x1f)))]


def _sraw(args: OpcodeArgs) -> list[Statement]:
    source = gpr(args.rd)
    amount = Declare('n', U32, gpr(args.rb) & 0x3f)
    n = amount.var
    wide_shift = (n & 0x20).ne(0)
    result = Declare('result', U32, wide_shift.select(
        (signed(source) >> 31).cast(U32),
        (signed(source) >> n).cast(U32)))
    lost = source & wide_shift.select(Const(0xffffffff), ~(Const(0xffffffff) << n))
    return [
        amount,
        result,
        set_carry(is_negative(source).logical_and(lost.ne(0))),
        Assign(gpr(args.ra), result.var)
    ]


def _cntlzw(source: Expression) -> Expression:
    return Intrinsic('cntlzw', (source,), U32)


class IntegerOpcodes:
    addi = _ImmediateArithmeticOpcode('addi', 14, _addi)
    addis = _ImmediateArithmeticOpcode('addis', 15, _addis)
    addic = _ImmediateArithmeticOpcode('addic', 12, _addic)
    addic_record = _ImmediateArithmeticOpcode('addic.', 13, _addic_record)
    subfic = _ImmediateArithmeticOpcode('subfic', 8, _subfic)
    mulli = _ImmediateArithmeticOpcode('mulli', 7, _mulli)
    ori = _ImmediateLogicalOpcode('ori', 24, lambda s, imm: s | imm)
    oris = _ImmediateLogicalOpcode('oris', 25, lambda s, imm: s | imm, shifted=True)
    xori = _ImmediateLogicalOpcode('xori', 26, lambda s, imm: s ^ imm)
    xoris = _ImmediateLogicalOpcode('xoris', 27, lambda s, imm: s ^ imm, shifted=True)
    andi_record = _ImmediateLogicalOpcode('andi.', 28, lambda s, imm: s & imm, records=True)
    andis_record = _ImmediateLogicalOpcode('andis.', 29, lambda s, imm: s & imm, shifted=True, records=True)
    cmpi = _CompareImmediateOpcode('cmpi', 11)
    cmpli = _CompareImmediateOpcode('cmpli', 10, unsigned=True)
    cmp = _CompareOpcode('cmp', 0)
    cmpl = _CompareOpcode('cmpl', 32, unsigned=True)
    add = _XoArithmeticOpcode('add', 266, _add)
    addc = _XoArithmeticOpcode('addc', 10, _addc)
    adde = _XoArithmeticOpcode('adde', 138, _adde)
    addme = _XoArithmeticOpcode('addme', 234, _addme, unary=True)
    addze = _XoArithmeticOpcode('addze', 202, _addze, unary=True)
    subf = _XoArithmeticOpcode('subf', 40, _subf)
    subfc = _XoArithmeticOpcode('subfc', 8, _subfc)
    subfe = _XoArithmeticOpcode('subfe', 136, _subfe)
    subfme = _XoArithmeticOpcode('subfme', 232, _subfme, unary=True)
    subfze = _XoArithmeticOpcode('subfze', 200, _subfze, unary=True)
    neg = _XoArithmeticOpcode('neg', 104, _neg, unary=True)
    mullw = _XoArithmeticOpcode('mullw', 235, _mullw)
    mulhw = _XoArithmeticOpcode('mulhw', 75, _mulhw, overflow=False)
    mulhwu = _XoArithmeticOpcode('mulhwu', 11, _mulhwu, overflow=False)
    divw = _XoArithmeticOpcode('divw', 491, _divw)
    divwu = _XoArithmeticOpcode('divwu', 459, _divwu)
    and_ = _LogicalOpcode('and', 28, lambda s, b: s & b)
    andc = _LogicalOpcode('andc', 60, lambda s, b: s & ~b)
    or_ = _LogicalOpcode('or', 444, lambda s, b: s | b)
    orc = _LogicalOpcode('orc', 412, lambda s, b: s | ~b)
    xor = _LogicalOpcode('xor', 316, lambda s, b: s ^ b)
    nand = _LogicalOpcode('nand', 476, lambda s, b: ~(s & b))
    nor = _LogicalOpcode('nor', 124, lambda s, b: ~(s | b))
    eqv = _LogicalOpcode('eqv', 284, lambda s, b: ~(s ^ b))
    slw = _ShiftOpcode('slw', 24, _slw)
    srw = _ShiftOpcode('srw', 536, _srw)
    sraw = _ShiftOpcode('sraw', 792, _sraw)
    srawi = _ShiftImmediateOpcode('srawi', 824)
    cntlzw = _UnaryLogicalOpcode('cntlzw', 26, _cntlzw)
    extsb = _UnaryLogicalOpcode('extsb', 954, lambda s: s.cast(S8).cast(S32).cast(U32))
    extsh = _UnaryLogicalOpcode('extsh', 922, lambda s: s.cast(S16).cast(S32).cast(U32))


def _compare_word_string(args: OpcodeArgs, operand: str) -> str:
    if args.crfd == 0:
        return f'{args.ra}, {operand}'
    return f'{Helpers.cr_field_string(args.crfd)}, {args.ra}, {operand}'


def _same_source(args: OpcodeArgs) -> bool:
    return args.rd.index == args.rb.index


class IntegerPseudoOpcodes:
    li = PseudoOpcode(
        'li', IntegerOpcodes.addi,
        lambda args: args.ra.index == 0,
        lambda args, address: f'{args.rd}, {Helpers.signed_imm_string(args.imm)}')
    la = PseudoOpcode(
        'la', IntegerOpcodes.addi,
        lambda args: args.ra.index in registers.SMALL_DATA_BASES,
        lambda args, address: f'{args.rd}, {Helpers.memory_operand_string(args.imm, args.ra)}')
    lis = PseudoOpcode(
        'lis', IntegerOpcodes.addis,
        lambda args: args.ra.index == 0,
        lambda args, address: f'{args.rd}, {Helpers.unsigned_imm_string(args.imm & 0xffff)}')
    nop = PseudoOpcode(
        'nop', IntegerOpcodes.ori,
        lambda args: args.rd.index == 0 and args.ra.index == 0 and args.imm == 0,
        lambda args, address: '',
        lambda args, address: [Nop()])
    mr = PseudoOpcode(
        'mr', IntegerOpcodes.or_,
        _same_source,
        lambda args, address: f'{args.ra}, {args.rd}')
    not_ = PseudoOpcode(
        'not', IntegerOpcodes.nor,
        _same_source,
        lambda args, address: f'{args.ra}, {args.rd}')
    sub = PseudoOpcode(
        'sub', IntegerOpcodes.subf,
        lambda args: True,
        lambda args, address: f'{args.rd}, {args.rb}, {args.ra}')
    cmpw = PseudoOpcode(
        'cmpw', IntegerOpcodes.cmp,
        lambda args: args.l == 0,
        lambda args, address: _compare_word_string(args, str(args.rb)))
    cmplw = PseudoOpcode(
        'cmplw', IntegerOpcodes.cmpl,
        lambda args: args.l == 0,
        lambda args, address: _compare_word_string(args, str(args.rb)))
    cmpwi = PseudoOpcode(
        'cmpwi', IntegerOpcodes.cmpi,
        lambda args: args.l == 0,
        lambda args, address: _compare_word_string(args, Helpers.signed_imm_string(args.imm)))
    cmplwi = PseudoOpcode(
        'cmplwi', IntegerOpcodes.cmpli,
        lambda args: args.l == 0,
        lambda args, address: _compare_word_string(args, Helpers.unsigned_imm_string(args.imm)))
