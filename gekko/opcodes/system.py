import dataclasses
from collections.abc import Callable
from gekko import fields, registers
from gekko.fields import EncodedInstruction
from gekko.fragments import (
    Address, Assign, Const, Expression, If, Invoke, JumpIndirect, Nop, Statement, Store, Var, S32, U64)
from gekko.opcodes.base import ExtendedOpcode, Helpers, Opcode, OpcodeArgs, PseudoOpcode, primary_opcode_mixin
from gekko.opcodes.semantics import (
    ALIGNED_ADDRESS_MASK, CACHE_LINE_MASK, CACHE_LINE_SIZE, cr, declare_ea, field_mask, gpr, msr, offset,
    segment_register, set_cr_field, signed, special_register, x_form_ea, xer)


TRAP_LESS = 0x10
TRAP_GREATER = 0x08
TRAP_EQUAL = 0x04
TRAP_LESS_UNSIGNED = 0x02
TRAP_GREATER_UNSIGNED = 0x01
TRAP_ALWAYS = 0x1f


def _trap_condition(to: int, left: Expression, right: Expression) -> Expression | None:
    conditions = []
    if to & TRAP_LESS:
        conditions.append(signed(left).lt(signed(right)))
    if to & TRAP_GREATER:
        conditions.append(signed(left).gt(signed(right)))
    if to & TRAP_EQUAL:
        conditions.append(left.eq(right))
    if to & TRAP_LESS_UNSIGNED:
        conditions.append(left.lt(right))
    if to & TRAP_GREATER_UNSIGNED:
        conditions.append(left.gt(right))
    condition = None
    for term in conditions:
        condition = term if condition is None else condition.logical_or(term)
    return condition


def _trap(to: int, left: Expression, right: Expression) -> list[Statement]:
    if to & TRAP_ALWAYS == TRAP_ALWAYS:
        return [Invoke('trap')]
    condition = _trap_condition(to, left, right)
    if condition is None:
        return [Nop('trap never taken')]
    return [If(condition, (Invoke('trap'),))]


@dataclasses.dataclass(frozen=True)
class _TrapOpcode(primary_opcode_mixin(31), ExtendedOpcode):
    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.to}, {args.ra}, {args.rb}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            to=fields.TO.extract(encoded),
            ra=Helpers.decode_gpr(encoded, fields.A),
            rb=Helpers.decode_gpr(encoded, fields.B))

    def encode_args(self, args: OpcodeArgs) -> int:
        return (
            fields.TO.insert(args.to) | Helpers.encode_register(args.ra, fields.A) |
            Helpers.encode_register(args.rb, fields.B))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        return _trap(args.to, gpr(args.ra), gpr(args.rb))


@dataclasses.dataclass(frozen=True)
class _TrapImmediateOpcode(Opcode):
    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.to}, {args.ra}, {Helpers.signed_imm_string(args.imm)}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            to=fields.TO.extract(encoded),
            ra=Helpers.decode_gpr(encoded, fields.A),
            imm=fields.SIMM.extract(encoded))

    def encode_args(self, args: OpcodeArgs) -> int:
        return fields.TO.insert(args.to) | Helpers.encode_register(args.ra, fields.A) | fields.SIMM.insert(args.imm)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        return _trap(args.to, gpr(args.ra), Const(args.imm & 0xffffffff))


@dataclasses.dataclass(frozen=True)
class _SystemCallOpcode(Opcode):
    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return ''

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs()

    def encode_args(self, args: OpcodeArgs) -> int:
        return fields.AA.insert(1)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        return [Invoke('system_call')]


@dataclasses.dataclass(frozen=True)
class _NoOperandOpcode(ExtendedOpcode):
    statements: Callable[[], list[Statement]]

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return ''

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs()

    def encode_args(self, args: OpcodeArgs) -> int:
        return 0

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        return self.statements()


def _return_from_interrupt() -> list[Statement]:
    return [Assign(msr, Var('srr1')), JumpIndirect(Var('srr0') & ALIGNED_ADDRESS_MASK)]


def _annotated_nop(note: str) -> Callable[[], list[Statement]]:
    return lambda: [Nop(note)]


@dataclasses.dataclass(frozen=True)
class _MoveRegisterOpcode(primary_opcode_mixin(31), ExtendedOpcode):
    register: Var
    moves_to: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return str(args.rd)

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(rd=Helpers.decode_gpr(encoded, fields.D))

    def encode_args(self, args: OpcodeArgs) -> int:
        return Helpers.encode_register(args.rd, fields.D)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        if self.moves_to:
            return [Assign(self.register, gpr(args.rd))]
        return [Assign(gpr(args.rd), self.register)]


@dataclasses.dataclass(frozen=True)
class _MoveToConditionFieldsOpcode(primary_opcode_mixin(31), ExtendedOpcode):
    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{Helpers.unsigned_imm_string(args.mask)}, {args.rd}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(mask=fields.CRM.extract(encoded), rd=Helpers.decode_gpr(encoded, fields.D))

    def encode_args(self, args: OpcodeArgs) -> int:
        return fields.CRM.insert(args.mask) | Helpers.encode_register(args.rd, fields.D)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        mask = field_mask(args.mask)
        if mask == 0xffffffff:
            return [Assign(cr, gpr(args.rd))]
        if mask == 0:
            return [Nop()]
        return [Assign(cr, (cr & (~mask & 0xffffffff)) | (gpr(args.rd) & mask))]


@dataclasses.dataclass(frozen=True)
class _MoveFromXerOpcode(primary_opcode_mixin(31), ExtendedOpcode):
    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return Helpers.cr_field_string(args.crfd)

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(crfd=fields.CRFD.extract(encoded))

    def encode_args(self, args: OpcodeArgs) -> int:
        return fields.CRFD.insert(args.crfd)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        return [set_cr_field(args.crfd, xer >> 28), Assign(xer, xer & 0x0fffffff)]


@dataclasses.dataclass(frozen=True)
class _SpecialRegisterOpcode(primary_opcode_mixin(31), ExtendedOpcode):
    moves_to: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        if self.moves_to:
            return f'{args.spr}, {args.rd}'
        return f'{args.rd}, {args.spr}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(rd=Helpers.decode_gpr(encoded, fields.D), spr=fields.SPR.extract(encoded))

    def encode_args(self, args: OpcodeArgs) -> int:
        return Helpers.encode_register(args.rd, fields.D) | fields.SPR.insert(args.spr)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        if self.moves_to:
            return [Assign(special_register(args.spr), gpr(args.rd))]
        return [Assign(gpr(args.rd), special_register(args.spr))]


@dataclasses.dataclass(frozen=True)
class _SegmentRegisterOpcode(primary_opcode_mixin(31), ExtendedOpcode):
    moves_to: bool = dataclasses.field(default=False, kw_only=True)
    indirect: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        if self.indirect:
            return f'{args.rd}, {args.rb}'
        if self.moves_to:
            return f'{args.sr}, {args.rd}'
        return f'{args.rd}, {args.sr}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        if self.indirect:
            return OpcodeArgs(rd=Helpers.decode_gpr(encoded, fields.D), rb=Helpers.decode_gpr(encoded, fields.B))
        return OpcodeArgs(rd=Helpers.decode_gpr(encoded, fields.D), sr=fields.SR.extract(encoded))

    def encode_args(self, args: OpcodeArgs) -> int:
        selector = Helpers.encode_register(args.rb, fields.B) if self.indirect else fields.SR.insert(args.sr)
        return Helpers.encode_register(args.rd, fields.D) | selector

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        register = segment_register((gpr(args.rb) >> 28).cast(S32) if self.indirect else args.sr)
        if self.moves_to:
            return [Assign(register, gpr(args.rd))]
        return [Assign(gpr(args.rd), register)]


@dataclasses.dataclass(frozen=True)
class _CacheOpcode(ExtendedOpcode):
    note: str
    zeroes: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{Helpers.base_register_string(args.ra)}, {args.rb}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(ra=Helpers.decode_gpr(encoded, fields.A), rb=Helpers.decode_gpr(encoded, fields.B))

    def encode_args(self, args: OpcodeArgs) -> int:
        return Helpers.encode_register(args.ra, fields.A) | Helpers.encode_register(args.rb, fields.B)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        if not self.zeroes:
            return [Nop(self.note)]
        ea = declare_ea(x_form_ea(args.ra, args.rb) & CACHE_LINE_MASK)
        translated = args.ra.index == 0
        return [ea, *(
            Store(Address(offset(ea.var, i), translated), Const(0, U64), U64)
            for i in range(0, CACHE_LINE_SIZE, 8))]


@dataclasses.dataclass(frozen=True)
class _TlbInvalidateOpcode(primary_opcode_mixin(31), ExtendedOpcode):
    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return str(args.rb)

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(rb=Helpers.decode_gpr(encoded, fields.B))

    def encode_args(self, args: OpcodeArgs) -> int:
        return Helpers.encode_register(args.rb, fields.B)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        return [Nop('tlbie: translation lookaside buffer entry invalidate')]


class SystemOpcodes:
    twi = _TrapImmediateOpcode('twi', 3)
    sc = _SystemCallOpcode('sc', 17)
    rfi = _NoOperandOpcode('rfi', 19, 50, _return_from_interrupt)
    isync = _NoOperandOpcode('isync', 19, 150, _annotated_nop('isync: instruction synchronize'))
    tw = _TrapOpcode('tw', 4)
    mfcr = _MoveRegisterOpcode('mfcr', 19, cr)
    mfmsr = _MoveRegisterOpcode('mfmsr', 83, msr)
    mtcrf = _MoveToConditionFieldsOpcode('mtcrf', 144)
    mtmsr = _MoveRegisterOpcode('mtmsr', 146, msr, moves_to=True)
    mtsr = _SegmentRegisterOpcode('mtsr', 210, moves_to=True)
    mtsrin = _SegmentRegisterOpcode('mtsrin', 242, moves_to=True, indirect=True)
    mfspr = _SpecialRegisterOpcode('mfspr', 339)
    mftb = _SpecialRegisterOpcode('mftb', 371)
    mtspr = _SpecialRegisterOpcode('mtspr', 467, moves_to=True)
    mcrxr = _MoveFromXerOpcode('mcrxr', 512)
    mfsr = _SegmentRegisterOpcode('mfsr', 595)
    mfsrin = _SegmentRegisterOpcode('mfsrin', 659, indirect=True)
    dcbst = _CacheOpcode('dcbst', 31, 54, 'dcbst: data cache block store')
    dcbf = _CacheOpcode('dcbf', 31, 86, 'dcbf: data cache block flush')
    dcbtst = _CacheOpcode('dcbtst', 31, 246, 'dcbtst: data cache block touch for store')
    dcbt = _CacheOpcode('dcbt', 31, 278, 'dcbt: data cache block touch')
    dcbi = _CacheOpcode('dcbi', 31, 470, 'dcbi: data cache block invalidate')
    icbi = _CacheOpcode('icbi', 31, 982, 'icbi: instruction cache block invalidate')
    dcbz = _CacheOpcode('dcbz', 31, 1014, 'dcbz: data cache block zero', zeroes=True)
    dcbz_l = _CacheOpcode('dcbz_l', 4, 1014, 'dcbz_l: locked cache block zero')
    tlbie = _TlbInvalidateOpcode('tlbie', 306)
    tlbia = _NoOperandOpcode('tlbia', 31, 370, _annotated_nop('tlbia: translation lookaside buffer invalidate'))
    tlbsync = _NoOperandOpcode('tlbsync', 31, 566, _annotated_nop('tlbsync: translation lookaside buffer sync'))
    sync = _NoOperandOpcode('sync', 31, 598, _annotated_nop('sync: synchronize'))
    eieio = _NoOperandOpcode('eieio', 31, 854, _annotated_nop('eieio: enforce in-order execution of i/o'))


def _spr_pseudo_opcodes(spr: int, name: str) -> tuple[PseudoOpcode, PseudoOpcode]:
    return (
        PseudoOpcode(
            f'mf{name}', SystemOpcodes.mfspr,
            lambda args: args.spr == spr,
            lambda args, address: str(args.rd)),
        PseudoOpcode(
            f'mt{name}', SystemOpcodes.mtspr,
            lambda args: args.spr == spr,
            lambda args, address: str(args.rd)))


class SystemPseudoOpcodes:
    trap = PseudoOpcode(
        'trap', SystemOpcodes.tw,
        lambda args: args.to == TRAP_ALWAYS,
        lambda args, address: '')
    mtcr = PseudoOpcode(
        'mtcr', SystemOpcodes.mtcrf,
        lambda args: args.mask == 0xff,
        lambda args, address: str(args.rd))
    mfxer, mtxer = _spr_pseudo_opcodes(1, 'xer')
    mflr, mtlr = _spr_pseudo_opcodes(8, 'lr')
    mfctr, mtctr = _spr_pseudo_opcodes(9, 'ctr')
    mfpvr = PseudoOpcode(
        'mfpvr', SystemOpcodes.mfspr,
        lambda args: args.spr == 287,
        lambda args, address: str(args.rd))
    mftb = PseudoOpcode(
        'mftb', SystemOpcodes.mftb,
        lambda args: args.spr == registers.TBL,
        lambda args, address: str(args.rd))
    mftbu = PseudoOpcode(
        'mftbu', SystemOpcodes.mftb,
        lambda args: args.spr == registers.TBU,
        lambda args, address: str(args.rd))
