import abc
import dataclasses
import functools
from collections.abc import Callable
from typing import ClassVar
from gekko import fields, registers
from gekko.fields import EncodedInstruction, Field
from gekko.fragments import Fragment, Invoke, Nop, Statement
from gekko.registers import Register


@dataclasses.dataclass(frozen=True)
class OpcodeArgs:
    rd: Register | None = None
    ra: Register | None = None
    rb: Register | None = None
    rc: Register | None = None
    imm: int | None = None
    sh: int | None = None
    mb: int | None = None
    me: int | None = None
    bo: int | None = None
    bi: int | None = None
    crfd: int | None = None
    crfs: int | None = None
    crbd: int | None = None
    crba: int | None = None
    crbb: int | None = None
    mask: int | None = None
    spr: int | None = None
    sr: int | None = None
    to: int | None = None
    nb: int | None = None
    l: int | None = None
    w: int | None = None
    i: int | None = None
    record: bool = False
    link: bool = False
    absolute: bool = False
    oe: bool = False

    def __str__(self) -> str:
        values = []
        for field in dataclasses.fields(self):
            value = getattr(self, field.name)
            if value is None or value is False:
                continue
            values.append(f'{field.name}={value:X}' if type(value) is int else f'{field.name}={value}')
        return ', '.join(values)


class Helpers:
    @staticmethod
    def decode_gpr(encoded: EncodedInstruction, field: Field) -> Register:
        return registers.gpr_by_index[field.extract(encoded)]

    @staticmethod
    def decode_fpr(encoded: EncodedInstruction, field: Field) -> Register:
        return registers.fpr_by_index[field.extract(encoded)]

    @staticmethod
    def encode_register(register: Register, field: Field) -> int:
        return field.insert(register.index)

    @staticmethod
    def decode_flag(encoded: EncodedInstruction, field: Field) -> bool:
        return field.extract(encoded) != 0

    @staticmethod
    def encode_flag(flag: bool, field: Field) -> int:
        return field.insert(1 if flag else 0)

    @staticmethod
    def signed_imm_string(imm: int) -> str:
        return f'0x{imm:x}' if imm >= 0 else f'-0x{-imm:x}'

    @staticmethod
    def unsigned_imm_string(imm: int) -> str:
        return f'0x{imm:x}'

    @staticmethod
    def address_string(address: int) -> str:
        return f'0x{address:08x}'

    @staticmethod
    def base_register_string(register: Register) -> str:
        return '0' if register.index == 0 else str(register)

    @staticmethod
    def memory_operand_string(imm: int, base: Register) -> str:
        return f'{Helpers.signed_imm_string(imm)}({Helpers.base_register_string(base)})'

    @staticmethod
    def cr_field_string(field: int) -> str:
        return f'cr{field}'


@dataclasses.dataclass(frozen=True)
class Opcode(abc.ABC):
    name: str
    primary_opcode: int

    @property
    def extended_field(self) -> Field | None:
        return None

    @functools.cached_property
    def signature(self) -> tuple[int, int]:
        """(mask, value) pair of the bits that identify this opcode."""
        return self.compute_signature()

    def compute_signature(self) -> tuple[int, int]:
        return fields.PRIMARY.mask, fields.PRIMARY.insert(self.primary_opcode)

    def matches(self, encoded: EncodedInstruction) -> bool:
        mask, value = self.signature
        return encoded & mask == value

    def mnemonic(self, args: OpcodeArgs) -> str:
        return (
            f'{self.name}{"o" if args.oe else ""}{"l" if args.link else ""}'
            f'{"a" if args.absolute else ""}{"." if args.record else ""}')

    def to_string(self, args: OpcodeArgs, address: int = 0) -> str:
        args_string = self.args_to_string(args, address)
        mnemonic = self.mnemonic(args)
        return f'{mnemonic} {args_string}' if len(args_string) > 0 else mnemonic

    def encode(self, args: OpcodeArgs) -> EncodedInstruction:
        return self.signature[1] | self.encode_args(args)

    def emit(self, args: OpcodeArgs, address: int = 0) -> Fragment:
        return Fragment(address, tuple(self.emit_statements(args, address)))

    @staticmethod
    def decode_primary(encoded: EncodedInstruction) -> int:
        return fields.PRIMARY.extract(encoded)

    @abc.abstractmethod
    def args_to_string(self, args: OpcodeArgs, address: int) -> str: ...

    @abc.abstractmethod
    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs: ...

    @abc.abstractmethod
    def encode_args(self, args: OpcodeArgs) -> int: ...

    @abc.abstractmethod
    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]: ...


def primary_opcode_mixin(primary: int):
    @dataclasses.dataclass(frozen=True)
    class _PrimaryOpcodeMixin:
        PRIMARY_OPCODE: ClassVar[int] = primary
        primary_opcode: int = dataclasses.field(init=False, default=PRIMARY_OPCODE)

    return _PrimaryOpcodeMixin


@dataclasses.dataclass(frozen=True)
class ExtendedOpcode(Opcode, abc.ABC):
    EXTENDED_FIELD: ClassVar[Field] = fields.XO10
    extended_opcode: int

    @property
    def extended_field(self) -> Field | None:
        return self.EXTENDED_FIELD

    def compute_signature(self) -> tuple[int, int]:
        mask, value = super().compute_signature()
        return mask | self.EXTENDED_FIELD.mask, value | self.EXTENDED_FIELD.insert(self.extended_opcode)


class Xo9Mixin:
    EXTENDED_FIELD: ClassVar[Field] = fields.XO9


class Xo6Mixin:
    EXTENDED_FIELD: ClassVar[Field] = fields.XO6


class Xo5Mixin:
    EXTENDED_FIELD: ClassVar[Field] = fields.XO5


OperationEmitter = Callable[[OpcodeArgs], list[Statement]]
ArgsFormatter = Callable[[OpcodeArgs, int], str]
AddressedEmitter = Callable[[OpcodeArgs, int], list[Statement]]


@dataclasses.dataclass(frozen=True)
class PseudoOpcode(Opcode):
    """Named specialization of a true opcode.

    Never recognizes a word on its own: it is selected after decoding when
    ``applies`` holds for the decoded args of ``base``.
    """
    primary_opcode: int = dataclasses.field(init=False, default=0)
    base: Opcode
    applies: Callable[[OpcodeArgs], bool]
    format_args: ArgsFormatter
    emitter: AddressedEmitter | None = None

    def __post_init__(self):
        object.__setattr__(self, 'primary_opcode', self.base.primary_opcode)

    def compute_signature(self) -> tuple[int, int]:
        return self.base.signature

    def matches(self, encoded: EncodedInstruction) -> bool:
        return False

    def encode(self, args: OpcodeArgs) -> EncodedInstruction:
        return self.base.encode(args)

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return self.format_args(args, address)

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return self.base.decode_args(encoded)

    def encode_args(self, args: OpcodeArgs) -> int:
        return self.base.encode_args(args)

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        if self.emitter is not None:
            return self.emitter(args, address)
        return self.base.emit_statements(args, address)


@dataclasses.dataclass(frozen=True)
class InvalidOpcode(Opcode):
    name: str = dataclasses.field(init=False, default='invalid')
    primary_opcode: int = dataclasses.field(init=False, default=0)
    encoded: EncodedInstruction
    cause: str

    def __post_init__(self):
        object.__setattr__(self, 'primary_opcode', self.decode_primary(self.encoded))

    def matches(self, encoded: EncodedInstruction) -> bool:
        return False

    def encode(self, args: OpcodeArgs = None) -> EncodedInstruction:
        return self.encoded

    def args_to_string(self, args: OpcodeArgs, address: int) -> str:
        return f'0x{self.encoded:08x}'

    def decode_args(self, encoded: EncodedInstruction) -> OpcodeArgs:
        return OpcodeArgs()

    def encode_args(self, args: OpcodeArgs) -> int:
        return 0

    def emit_statements(self, args: OpcodeArgs, address: int) -> list[Statement]:
        return [Nop(f'unrecognized instruction 0x{self.encoded:08x}: {self.cause}'), Invoke('trap')]


@dataclasses.dataclass(frozen=True)
class Instruction:
    opcode: Opcode
    args: OpcodeArgs
    address: int = 0
    display: Opcode | None = None

    @property
    def form(self) -> Opcode:
        """The classified opcode used for text and emission."""
        return self.display if self.display is not None else self.opcode

    def to_string(self) -> str:
        return self.form.to_string(self.args, self.address)

    def emit(self) -> Fragment:
        return self.form.emit(self.args, self.address)

    def encode(self) -> EncodedInstruction:
        return self.opcode.encode(self.args)

    def is_valid(self) -> bool:
        return not isinstance(self.opcode, InvalidOpcode)


@dataclasses.dataclass(frozen=True)
class InvalidInstruction(Instruction):
    opcode: InvalidOpcode
    args: OpcodeArgs = dataclasses.field(init=False, default_factory=OpcodeArgs)
