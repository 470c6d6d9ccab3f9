import dataclasses
from collections.abc import Callable
from gekko import fields
from gekko.fields import EncodedInstruction
from gekko.fragments import (
    Assign, CallDirect, CallIndirect, Const, Declare, Expression, Goto, If, JumpIndirect, Return, Statement, U32)
from gekko.opcodes.base import ExtendedOpcode, Helpers, Opcode, OpcodeArgs, PseudoOpcode, primary_opcode_mixin
from gekko.opcodes.semantics import (
    ALIGNED_ADDRESS_MASK, cr, cr_bit, cr_field, ctr, lr, set_cr_bit, set_cr_field)


BO_IGNORE_CONDITION = 0x10
BO_CONDITION_TRUE = 0x08
BO_IGNORE_COUNTER = 0x04
BO_COUNTER_ZERO = 0x02


def branch_target(args: OpcodeArgs, address: int) -> int:
    return args.imm & 0xffffffff if args.absolute else (address + args.imm) & 0xffffffff


def _counter_and_condition(args: OpcodeArgs) -> tuple[list[Statement], Expression | None]:
    statements: list[Statement] = []
    conditions: list[Expression] = []
    if not args.bo & BO_IGNORE_COUNTER:
        statements.append(Assign(ctr, ctr - 1))
        conditions.append(ctr.eq(0) if args.bo & BO_COUNTER_ZERO else ctr.ne(0))
    if not args.bo & BO_IGNORE_CONDITION:
        bit = cr & (1 << (31 - args.bi))
        conditions.append(bit.ne(0) if args.bo & BO_CONDITION_TRUE else bit.eq(0))
    condition = None
    for part in conditions:
        condition = part if condition is None else condition.logical_and(part)
    return statements, condition


def _guarded(condition: Expression | None, body: list[Statement]) -> list[Statement]:
    return body if condition is None else [If(condition, tuple(body))]


def _link(address: int) -> Assign:
    return Assign(lr, Const((address + 4) & 0xffffffff))


@dataclasses.dataclass(frozen=True)
class _BranchOpcode(Opcode):
    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return Helpers.address_string(branch_target(args, address))

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            imm=fields.LI.extract(encoded),
            absolute=Helpers.decode_flag(encoded, fields.AA),
            link=Helpers.decode_flag(encoded, fields.LK))

    def encode_args(self, args: OpcodeArgs) -> int:
        return (
            fields.LI.insert(args.imm) | Helpers.encode_flag(args.absolute, fields.AA) |
            Helpers.encode_flag(args.link, fields.LK))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        target = branch_target(args, address)
        if args.link:
            return [_link(address), CallDirect(target)]
        return [Goto(target)]


@dataclasses.dataclass(frozen=True)
class _BranchConditionalOpcode(Opcode):
    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.bo}, {args.bi}, {Helpers.address_string(branch_target(args, address))}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            bo=fields.BO.extract(encoded),
            bi=fields.BI.extract(encoded),
            imm=fields.BD.extract(encoded),
            absolute=Helpers.decode_flag(encoded, fields.AA),
            link=Helpers.decode_flag(encoded, fields.LK))

    def encode_args(self, args: OpcodeArgs) -> int:
        return (
            fields.BO.insert(args.bo) | fields.BI.insert(args.bi) | fields.BD.insert(args.imm) |
            Helpers.encode_flag(args.absolute, fields.AA) | Helpers.encode_flag(args.link, fields.LK))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        target = branch_target(args, address)
        statements, condition = _counter_and_condition(args)
        if args.link:
            statements.append(_link(address))
            return statements + _guarded(condition, [CallDirect(target)])
        return statements + _guarded(condition, [Goto(target)])


@dataclasses.dataclass(frozen=True)
class _BranchRegisterOpcode(primary_opcode_mixin(19), ExtendedOpcode):
    register: Expression

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.bo}, {args.bi}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            bo=fields.BO.extract(encoded),
            bi=fields.BI.extract(encoded),
            link=Helpers.decode_flag(encoded, fields.LK))

    def encode_args(self, args: OpcodeArgs) -> int:
        return fields.BO.insert(args.bo) | fields.BI.insert(args.bi) | Helpers.encode_flag(args.link, fields.LK)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        statements, condition = _counter_and_condition(args)
        if args.link:
            target = Declare('target', U32, self.register & ALIGNED_ADDRESS_MASK)
            statements += [target, _link(address)]
            return statements + _guarded(condition, [CallIndirect(target.var)])
        if self.register == lr:
            return statements + _guarded(condition, [Return()])
        return statements + _guarded(condition, [JumpIndirect(self.register & ALIGNED_ADDRESS_MASK)])


@dataclasses.dataclass(frozen=True)
class _ConditionRegisterFieldOpcode(primary_opcode_mixin(19), ExtendedOpcode):
    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{Helpers.cr_field_string(args.crfd)}, {Helpers.cr_field_string(args.crfs)}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(crfd=fields.CRFD.extract(encoded), crfs=fields.CRFS.extract(encoded))

    def encode_args(self, args: OpcodeArgs) -> int:
        return fields.CRFD.insert(args.crfd) | fields.CRFS.insert(args.crfs)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        return [set_cr_field(args.crfd, cr_field(args.crfs))]


@dataclasses.dataclass(frozen=True)
class _ConditionRegisterLogicalOpcode(primary_opcode_mixin(19), ExtendedOpcode):
    operation: Callable[[Expression, Expression], Expression]

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.crbd}, {args.crba}, {args.crbb}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            crbd=fields.D.extract(encoded),
            crba=fields.A.extract(encoded),
            crbb=fields.B.extract(encoded))

    def encode_args(self, args: OpcodeArgs) -> int:
        return fields.D.insert(args.crbd) | fields.A.insert(args.crba) | fields.B.insert(args.crbb)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        return [set_cr_bit(args.crbd, self.operation(cr_bit(args.crba), cr_bit(args.crbb)))]


class BranchOpcodes:
    b = _BranchOpcode('b', 18)
    bc = _BranchConditionalOpcode('bc', 16)
    bclr = _BranchRegisterOpcode('bclr', 16, lr)
    bcctr = _BranchRegisterOpcode('bcctr', 528, ctr)
    mcrf = _ConditionRegisterFieldOpcode('mcrf', 0)
    crnor = _ConditionRegisterLogicalOpcode('crnor', 33, lambda a, b: ~(a | b))
    crandc = _ConditionRegisterLogicalOpcode('crandc', 129, lambda a, b: a & ~b)
    crxor = _ConditionRegisterLogicalOpcode('crxor', 193, lambda a, b: a ^ b)
    crnand = _ConditionRegisterLogicalOpcode('crnand', 225, lambda a, b: ~(a & b))
    crand = _ConditionRegisterLogicalOpcode('crand', 257, lambda a, b: a & b)
    creqv = _ConditionRegisterLogicalOpcode('creqv', 289, lambda a, b: ~(a ^ b))
    crorc = _ConditionRegisterLogicalOpcode('crorc', 417, lambda a, b: a | ~b)
    cror = _ConditionRegisterLogicalOpcode('cror', 449, lambda a, b: a | b)


def _decrements_nonzero(args: OpcodeArgs) -> bool:
    return args.bo & 0x16 == 0x10


def _decrements_zero(args: OpcodeArgs) -> bool:
    return args.bo & 0x16 == 0x12


def _always(args: OpcodeArgs) -> bool:
    return args.bo & 0x14 == 0x14


def _tests_condition(expected: bool, bit: int) -> Callable[[OpcodeArgs], bool]:
    kind = 0x0c if expected else 0x04
    return lambda args: args.bo & 0x1c == kind and args.bi % 4 == bit


def _condition_operand(args: OpcodeArgs) -> str:
    return '' if args.bi // 4 == 0 else Helpers.cr_field_string(args.bi // 4)


def _target_operands(args: OpcodeArgs, address: int) -> str:
    field = _condition_operand(args)
    target = Helpers.address_string(branch_target(args, address))
    return f'{field}, {target}' if field else target


_TRUE_CONDITIONS = ('lt', 'gt', 'eq', 'so')
_FALSE_CONDITIONS = ('ge', 'le', 'ne', 'ns')


def _conditional_pseudo_opcodes(base: Opcode, suffix: str, register_form: bool) -> dict[str, PseudoOpcode]:
    def args_format(args: OpcodeArgs, address: int) -> str:
        return _condition_operand(args) if register_form else _target_operands(args, address)

    opcodes = {}
    for expected, names in ((True, _TRUE_CONDITIONS), (False, _FALSE_CONDITIONS)):
        for bit, condition in enumerate(names):
            name = f'b{condition}{suffix}'
            opcodes[name] = PseudoOpcode(name, base, _tests_condition(expected, bit), args_format)
    return opcodes


def _counter_pseudo_opcodes(base: Opcode, suffix: str, register_form: bool) -> dict[str, PseudoOpcode]:
    def args_format(args: OpcodeArgs, address: int) -> str:
        return '' if register_form else Helpers.address_string(branch_target(args, address))

    return {
        f'bdnz{suffix}': PseudoOpcode(f'bdnz{suffix}', base, _decrements_nonzero, args_format),
        f'bdz{suffix}': PseudoOpcode(f'bdz{suffix}', base, _decrements_zero, args_format),
    }


CONDITIONAL_BRANCH_PSEUDO_OPCODES = {
    **_counter_pseudo_opcodes(BranchOpcodes.bc, '', register_form=False),
    **_conditional_pseudo_opcodes(BranchOpcodes.bc, '', register_form=False),
    **_counter_pseudo_opcodes(BranchOpcodes.bclr, 'lr', register_form=True),
    **_conditional_pseudo_opcodes(BranchOpcodes.bclr, 'lr', register_form=True),
    **_conditional_pseudo_opcodes(BranchOpcodes.bcctr, 'ctr', register_form=True),
}


class BranchPseudoOpcodes:
    blr = PseudoOpcode('blr', BranchOpcodes.bclr, _always, lambda args, address: '')
    bctr = PseudoOpcode('bctr', BranchOpcodes.bcctr, _always, lambda args, address: '')
    crclr = PseudoOpcode(
        'crclr', BranchOpcodes.crxor,
        lambda args: args.crbd == args.crba == args.crbb,
        lambda args, address: f'{args.crbd}',
        lambda args, address: [Assign(cr, cr & (~(1 << (31 - args.crbd)) & 0xffffffff))])
    crset = PseudoOpcode(
        'crset', BranchOpcodes.creqv,
        lambda args: args.crbd == args.crba == args.crbb,
        lambda args, address: f'{args.crbd}',
        lambda args, address: [Assign(cr, cr | (1 << (31 - args.crbd)))])
    crmove = PseudoOpcode(
        'crmove', BranchOpcodes.cror,
        lambda args: args.crba == args.crbb,
        lambda args, address: f'{args.crbd}, {args.crba}')
    crnot = PseudoOpcode(
        'crnot', BranchOpcodes.crnor,
        lambda args: args.crba == args.crbb,
        lambda args, address: f'{args.crbd}, {args.crba}')
