import dataclasses
from gekko import fields
from gekko.fields import EncodedInstruction
from gekko.fragments import Assign, Const, Statement
from gekko.opcodes.base import Helpers, Opcode, OpcodeArgs, PseudoOpcode
from gekko.opcodes.semantics import gpr, record_cr0, rotate_left, rotate_mask


@dataclasses.dataclass(frozen=True)
class _RotateOpcode(Opcode):
    by_register: bool = dataclasses.field(default=False, kw_only=True)
    inserts: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        amount = args.rb if self.by_register else args.sh
        return f'{args.ra}, {args.rd}, {amount}, {args.mb}, {args.me}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            rd=Helpers.decode_gpr(encoded, fields.D),
            ra=Helpers.decode_gpr(encoded, fields.A),
            rb=Helpers.decode_gpr(encoded, fields.B) if self.by_register else None,
            sh=None if self.by_register else fields.SH.extract(encoded),
            mb=fields.MB.extract(encoded),
            me=fields.ME.extract(encoded),
            record=Helpers.decode_flag(encoded, fields.RC))

    def encode_args(self, args: OpcodeArgs) -> int:
        amount = Helpers.encode_register(args.rb, fields.B) if self.by_register else fields.SH.insert(args.sh)
        return (
            Helpers.encode_register(args.rd, fields.D) | Helpers.encode_register(args.ra, fields.A) | amount |
            fields.MB.insert(args.mb) | fields.ME.insert(args.me) | Helpers.encode_flag(args.record, fields.RC))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        source = gpr(args.rd)
        rotated = rotate_left(source, (gpr(args.rb) & 0x1f) if self.by_register else args.sh)
        mask = rotate_mask(args.mb, args.me)
        if self.inserts:
            kept = ~mask & 0xffffffff
            value = (rotated & mask) | (gpr(args.ra) & kept) if kept else rotated
        else:
            value = rotated & mask if mask != 0xffffffff else rotated
        return _with_record(args, value)


def _with_record(args: OpcodeArgs, value) -> list[Statement]:
    destination = gpr(args.ra)
    statements = [Assign(destination, value)]
    if args.record:
        statements.append(record_cr0(destination))
    return statements


class RotateOpcodes:
    rlwimi = _RotateOpcode('rlwimi', 20, inserts=True)
    rlwinm = _RotateOpcode('rlwinm', 21)
    rlwnm = _RotateOpcode('rlwnm', 23, by_register=True)


def _shift_right(args: OpcodeArgs, address: int) -> list[Statement]:
    return _with_record(args, gpr(args.rd) >> args.mb)


def _extract_right(args: OpcodeArgs, address: int) -> list[Statement]:
    return _with_record(args, (gpr(args.rd) >> (32 - args.sh)) & Const((1 << (32 - args.mb)) - 1))


def _shift_left_masked(args: OpcodeArgs, address: int) -> list[Statement]:
    return _with_record(args, (gpr(args.rd) << args.sh) & Const(rotate_mask(args.mb, args.me)))


class RotatePseudoOpcodes:
    rotlwi = PseudoOpcode(
        'rotlwi', RotateOpcodes.rlwinm,
        lambda args: args.mb == 0 and args.me == 31,
        lambda args, address: f'{args.ra}, {args.rd}, {args.sh}')
    clrlwi = PseudoOpcode(
        'clrlwi', RotateOpcodes.rlwinm,
        lambda args: args.sh == 0 and args.me == 31 and args.mb > 0,
        lambda args, address: f'{args.ra}, {args.rd}, {args.mb}')
    clrrwi = PseudoOpcode(
        'clrrwi', RotateOpcodes.rlwinm,
        lambda args: args.sh == 0 and args.mb == 0,
        lambda args, address: f'{args.ra}, {args.rd}, {31 - args.me}')
    srwi = PseudoOpcode(
        'srwi', RotateOpcodes.rlwinm,
        lambda args: args.me == 31 and args.sh + args.mb == 32,
        lambda args, address: f'{args.ra}, {args.rd}, {args.mb}',
        _shift_right)
    extrwi = PseudoOpcode(
        'extrwi', RotateOpcodes.rlwinm,
        lambda args: args.me == 31 and args.sh + args.mb > 32,
        lambda args, address: f'{args.ra}, {args.rd}, {32 - args.mb}, {args.sh + args.mb - 32}',
        _extract_right)
    clrlslwi = PseudoOpcode(
        'clrlslwi', RotateOpcodes.rlwinm,
        lambda args: args.sh > 0 and args.me == 31 - args.sh and args.mb <= args.me,
        lambda args, address: f'{args.ra}, {args.rd}, {args.mb + args.sh}, {args.sh}',
        _shift_left_masked)
    extlwi = PseudoOpcode(
        'extlwi', RotateOpcodes.rlwinm,
        lambda args: args.mb == 0 and args.sh > 0,
        lambda args, address: f'{args.ra}, {args.rd}, {args.me + 1}, {args.sh}')
    inslwi = PseudoOpcode(
        'inslwi', RotateOpcodes.rlwimi,
        lambda args: args.mb <= args.me and args.sh == (32 - args.mb) & 0x1f,
        lambda args, address: f'{args.ra}, {args.rd}, {args.me - args.mb + 1}, {args.mb}')
    insrwi = PseudoOpcode(
        'insrwi', RotateOpcodes.rlwimi,
        lambda args: args.mb <= args.me and args.sh == (31 - args.me) & 0x1f,
        lambda args, address: f'{args.ra}, {args.rd}, {args.me - args.mb + 1}, {args.mb}')
    rotlw = PseudoOpcode(
        'rotlw', RotateOpcodes.rlwnm,
        lambda args: args.mb == 0 and args.me == 31,
        lambda args, address: f'{args.ra}, {args.rd}, {args.rb}')
