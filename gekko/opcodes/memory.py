import dataclasses
from collections.abc import Callable
from gekko import fields
from gekko.fields import EncodedInstruction
from gekko.fragments import (
    Address, Assign, Const, Expression, If, Intrinsic, Load, Statement, Store, S16, S32, U8, U16, U32, U64)
from gekko.opcodes.base import ExtendedOpcode, Helpers, Opcode, OpcodeArgs, primary_opcode_mixin
from gekko.opcodes.semantics import (
    bits_to_double, bits_to_single, d_form_address, declare_ea, double_to_bits, fpr, gpr, offset, ps1, reserve,
    set_cr_field, single_to_bits, x_form_address, xer)


MemoryAccess = Callable[[OpcodeArgs, Address], list[Statement]]


def _load(ctype: str, sign_extend: bool = False) -> MemoryAccess:
    def access(args: OpcodeArgs, address: Address) -> list[Statement]:
        value = Load(address, ctype)
        if sign_extend:
            value = value.cast(S32).cast(U32)
        return [Assign(gpr(args.rd), value.cast(U32))]
    return access


def _store(ctype: str) -> MemoryAccess:
    def access(args: OpcodeArgs, address: Address) -> list[Statement]:
        return [Store(address, gpr(args.rd).cast(ctype), ctype)]
    return access


def _load_byte_reversed(ctype: str) -> MemoryAccess:
    def access(args: OpcodeArgs, address: Address) -> list[Statement]:
        return [Assign(gpr(args.rd), Intrinsic(f'bswap{ctype[1:]}', (Load(address, ctype),), ctype).cast(U32))]
    return access


def _store_byte_reversed(ctype: str) -> MemoryAccess:
    def access(args: OpcodeArgs, address: Address) -> list[Statement]:
        return [Store(address, Intrinsic(f'bswap{ctype[1:]}', (gpr(args.rd).cast(ctype),), ctype), ctype)]
    return access


def _load_single(args: OpcodeArgs, address: Address) -> list[Statement]:
    return [
        Assign(fpr(args.rd), bits_to_single(Load(address, U32))),
        Assign(ps1(args.rd), fpr(args.rd))
    ]


def _load_double(args: OpcodeArgs, address: Address) -> list[Statement]:
    return [Assign(fpr(args.rd), bits_to_double(Load(address, U64)))]


def _store_single(args: OpcodeArgs, address: Address) -> list[Statement]:
    return [Store(address, single_to_bits(fpr(args.rd)), U32)]


def _store_double(args: OpcodeArgs, address: Address) -> list[Statement]:
    return [Store(address, double_to_bits(fpr(args.rd)), U64)]


def _store_integer_word(args: OpcodeArgs, address: Address) -> list[Statement]:
    return [Store(address, double_to_bits(fpr(args.rd)).cast(U32), U32)]


def _load_reserved(args: OpcodeArgs, address: Address) -> list[Statement]:
    return [Assign(gpr(args.rd), Load(address, U32)), Assign(reserve, Const(1))]


def _store_conditional(args: OpcodeArgs, address: Address) -> list[Statement]:
    return [
        If(reserve.ne(0), (Store(address, gpr(args.rd), U32),)),
        set_cr_field(0, reserve.ne(0).select(Const(2), Const(0)) | (xer >> 31)),
        Assign(reserve, Const(0))
    ]


@dataclasses.dataclass(frozen=True)
class _LoadStoreOpcode(Opcode):
    access: MemoryAccess
    update: bool = dataclasses.field(default=False, kw_only=True)
    floating: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.rd}, {Helpers.memory_operand_string(args.imm, args.ra)}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        decode_data = Helpers.decode_fpr if self.floating else Helpers.decode_gpr
        return OpcodeArgs(
            rd=decode_data(encoded, fields.D),
            ra=Helpers.decode_gpr(encoded, fields.A),
            imm=fields.SIMM.extract(encoded))

    def encode_args(self, args: OpcodeArgs) -> int:
        return (
            Helpers.encode_register(args.rd, fields.D) | Helpers.encode_register(args.ra, fields.A) |
            fields.SIMM.insert(args.imm))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        if self.update:
            ea = declare_ea(offset(gpr(args.ra), args.imm))
            return [ea, *self.access(args, Address(ea.var)), Assign(gpr(args.ra), ea.var)]
        return self.access(args, d_form_address(args.ra, args.imm))


@dataclasses.dataclass(frozen=True)
class _IndexedLoadStoreOpcode(primary_opcode_mixin(31), ExtendedOpcode):
    access: MemoryAccess
    update: bool = dataclasses.field(default=False, kw_only=True)
    floating: bool = dataclasses.field(default=False, kw_only=True)
    records: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.rd}, {Helpers.base_register_string(args.ra)}, {args.rb}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        decode_data = Helpers.decode_fpr if self.floating else Helpers.decode_gpr
        return OpcodeArgs(
            rd=decode_data(encoded, fields.D),
            ra=Helpers.decode_gpr(encoded, fields.A),
            rb=Helpers.decode_gpr(encoded, fields.B))

    def encode_args(self, args: OpcodeArgs) -> int:
        return (
            Helpers.encode_register(args.rd, fields.D) | Helpers.encode_register(args.ra, fields.A) |
            Helpers.encode_register(args.rb, fields.B) | Helpers.encode_flag(self.records, fields.RC))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        if self.update:
            ea = declare_ea(gpr(args.ra) + gpr(args.rb))
            return [ea, *self.access(args, Address(ea.var)), Assign(gpr(args.ra), ea.var)]
        return self.access(args, x_form_address(args.ra, args.rb))


@dataclasses.dataclass(frozen=True)
class _MultipleOpcode(Opcode):
    stores: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.rd}, {Helpers.memory_operand_string(args.imm, args.ra)}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            rd=Helpers.decode_gpr(encoded, fields.D),
            ra=Helpers.decode_gpr(encoded, fields.A),
            imm=fields.SIMM.extract(encoded))

    def encode_args(self, args: OpcodeArgs) -> int:
        return (
            Helpers.encode_register(args.rd, fields.D) | Helpers.encode_register(args.ra, fields.A) |
            fields.SIMM.insert(args.imm))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        statements: list[Statement] = []
        if args.ra.index == 0:
            def word_address(i: int) -> Address:
                return Address(Const((args.imm + 4 * i) & 0xffffffff), translated=True)
        else:
            ea = declare_ea(offset(gpr(args.ra), args.imm))
            statements.append(ea)

            def word_address(i: int) -> Address:
                return Address(offset(ea.var, 4 * i))
        for i, index in enumerate(range(args.rd.index, 32)):
            if self.stores:
                statements.append(Store(word_address(i), gpr(index), U32))
            else:
                statements.append(Assign(gpr(index), Load(word_address(i), U32)))
        return statements


@dataclasses.dataclass(frozen=True)
class _StringImmediateOpcode(primary_opcode_mixin(31), ExtendedOpcode):
    stores: bool = dataclasses.field(default=False, kw_only=True)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'{args.rd}, {Helpers.base_register_string(args.ra)}, {args.nb}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs(
            rd=Helpers.decode_gpr(encoded, fields.D),
            ra=Helpers.decode_gpr(encoded, fields.A),
            nb=fields.NB.extract(encoded))

    def encode_args(self, args: OpcodeArgs) -> int:
        return (
            Helpers.encode_register(args.rd, fields.D) | Helpers.encode_register(args.ra, fields.A) |
            fields.NB.insert(args.nb))

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        count = args.nb or 32
        statements: list[Statement] = []
        if args.ra.index == 0:
            def byte_address(i: int) -> Address:
                return Address(Const(i), translated=True)
        else:
            ea = declare_ea(gpr(args.ra))
            statements.append(ea)

            def byte_address(i: int) -> Address:
                return Address(offset(ea.var, i))
        for start in range(0, count, 4):
            register = gpr((args.rd.index + start // 4) % 32)
            size = min(4, count - start)
            if self.stores:
                for i in range(size):
                    shift = 24 - 8 * i
                    byte = register >> shift if shift else register
                    statements.append(Store(byte_address(start + i), byte.cast(U8), U8))
            else:
                value: Expression | None = None
                for i in range(size):
                    shift = 24 - 8 * i
                    byte = Load(byte_address(start + i), U8).cast(U32)
                    byte = byte << shift if shift else byte
                    value = byte if value is None else value | byte
                statements.append(Assign(register, value))
        return statements


class MemoryOpcodes:
    lwz = _LoadStoreOpcode('lwz', 32, _load(U32))
    lwzu = _LoadStoreOpcode('lwzu', 33, _load(U32), update=True)
    lbz = _LoadStoreOpcode('lbz', 34, _load(U8))
    lbzu = _LoadStoreOpcode('lbzu', 35, _load(U8), update=True)
    stw = _LoadStoreOpcode('stw', 36, _store(U32))
    stwu = _LoadStoreOpcode('stwu', 37, _store(U32), update=True)
    stb = _LoadStoreOpcode('stb', 38, _store(U8))
    stbu = _LoadStoreOpcode('stbu', 39, _store(U8), update=True)
    lhz = _LoadStoreOpcode('lhz', 40, _load(U16))
    lhzu = _LoadStoreOpcode('lhzu', 41, _load(U16), update=True)
    lha = _LoadStoreOpcode('lha', 42, _load(S16, sign_extend=True))
    lhau = _LoadStoreOpcode('lhau', 43, _load(S16, sign_extend=True), update=True)
    sth = _LoadStoreOpcode('sth', 44, _store(U16))
    sthu = _LoadStoreOpcode('sthu', 45, _store(U16), update=True)
    lmw = _MultipleOpcode('lmw', 46)
    stmw = _MultipleOpcode('stmw', 47, stores=True)
    lfs = _LoadStoreOpcode('lfs', 48, _load_single, floating=True)
    lfsu = _LoadStoreOpcode('lfsu', 49, _load_single, floating=True, update=True)
    lfd = _LoadStoreOpcode('lfd', 50, _load_double, floating=True)
    lfdu = _LoadStoreOpcode('lfdu', 51, _load_double, floating=True, update=True)
    stfs = _LoadStoreOpcode('stfs', 52, _store_single, floating=True)
    stfsu = _LoadStoreOpcode('stfsu', 53, _store_single, floating=True, update=True)
    stfd = _LoadStoreOpcode('stfd', 54, _store_double, floating=True)
    stfdu = _LoadStoreOpcode('stfdu', 55, _store_double, floating=True, update=True)
    lwarx = _IndexedLoadStoreOpcode('lwarx', 20, _load_reserved)
    lwzx = _IndexedLoadStoreOpcode('lwzx', 23, _load(U32))
    lwzux = _IndexedLoadStoreOpcode('lwzux', 55, _load(U32), update=True)
    lbzx = _IndexedLoadStoreOpcode('lbzx', 87, _load(U8))
    lbzux = _IndexedLoadStoreOpcode('lbzux', 119, _load(U8), update=True)
    stwcx_record = _IndexedLoadStoreOpcode('stwcx.', 150, _store_conditional, records=True)
    stwx = _IndexedLoadStoreOpcode('stwx', 151, _store(U32))
    stwux = _IndexedLoadStoreOpcode('stwux', 183, _store(U32), update=True)
    stbx = _IndexedLoadStoreOpcode('stbx', 215, _store(U8))
    stbux = _IndexedLoadStoreOpcode('stbux', 247, _store(U8), update=True)
    lhzx = _IndexedLoadStoreOpcode('lhzx', 279, _load(U16))
    lhzux = _IndexedLoadStoreOpcode('lhzux', 311, _load(U16), update=True)
    lhax = _IndexedLoadStoreOpcode('lhax', 343, _load(S16, sign_extend=True))
    lhaux = _IndexedLoadStoreOpcode('lhaux', 375, _load(S16, sign_extend=True), update=True)
    sthx = _IndexedLoadStoreOpcode('sthx', 407, _store(U16))
    sthux = _IndexedLoadStoreOpcode('sthux', 439, _store(U16), update=True)
    lwbrx = _IndexedLoadStoreOpcode('lwbrx', 534, _load_byte_reversed(U32))
    lhbrx = _IndexedLoadStoreOpcode('lhbrx', 790, _load_byte_reversed(U16))
    stwbrx = _IndexedLoadStoreOpcode('stwbrx', 662, _store_byte_reversed(U32))
    sthbrx = _IndexedLoadStoreOpcode('sthbrx', 918, _store_byte_reversed(U16))
    lswi = _StringImmediateOpcode('lswi', 597)
    stswi = _StringImmediateOpcode('stswi', 725, stores=True)
    lfsx = _IndexedLoadStoreOpcode('lfsx', 535, _load_single, floating=True)
    lfsux = _IndexedLoadStoreOpcode('lfsux', 567, _load_single, floating=True, update=True)
    lfdx = _IndexedLoadStoreOpcode('lfdx', 599, _load_double, floating=True)
    lfdux = _IndexedLoadStoreOpcode('lfdux', 631, _load_double, floating=True, update=True)
    stfsx = _IndexedLoadStoreOpcode('stfsx', 663, _store_single, floating=True)
    stfsux = _IndexedLoadStoreOpcode('stfsux', 695, _store_single, floating=True, update=True)
    stfdx = _IndexedLoadStoreOpcode('stfdx', 727, _store_double, floating=True)
    stfdux = _IndexedLoadStoreOpcode('stfdux', 759, _store_double, floating=True, update=True)
    stfiwx = _IndexedLoadStoreOpcode('stfiwx', 983, _store_integer_word, floating=True)
