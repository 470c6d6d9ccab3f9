import logging
from gekko.catalog import CATALOG, Catalog
from gekko.fields import EncodedInstruction, Field
from gekko.opcodes.base import Instruction, InvalidInstruction, InvalidOpcode, Opcode, OpcodeArgs


logger = logging.getLogger(__name__)

OpcodeTable = tuple[Field | None, dict[int, Opcode]]


class Decoder:
    def __init__(self, catalog: Catalog = CATALOG):
        self._catalog = catalog
        self._primary_tables: list[list[OpcodeTable]] = [[] for _ in range(0x40)]
        for primary, opcodes in catalog.by_primary.items():
            self._insert_opcodes(primary, opcodes)

    def resolve(self, encoded: EncodedInstruction) -> tuple[Opcode, OpcodeArgs] | None:
        opcode = self._find(encoded)
        if opcode is None:
            return None
        return opcode, opcode.decode_args(encoded)

    def decode(self, encoded: EncodedInstruction, address: int = 0) -> Instruction:
        opcode = self._find(encoded)
        if opcode is None:
            cause = self._invalid_cause(encoded)
            logger.debug(f'0x{address:08X}: {cause} in 0x{encoded:08X}')
            return Decoder._create_invalid_instruction(encoded, address, cause)
        args = opcode.decode_args(encoded)
        return Instruction(opcode, args, address, self._catalog.classify(opcode, args))

    def _insert_opcodes(self, primary: int, opcodes: tuple[Opcode, ...]):
        tables = self._primary_tables[primary]
        for opcode in opcodes:
            extended_field = opcode.extended_field
            table = next((table for field, table in tables if field == extended_field), None)
            if table is None:
                table = {}
                tables.append((extended_field, table))
            key = 0 if extended_field is None else opcode.extended_opcode
            table.setdefault(key, opcode)

    def _find(self, encoded: EncodedInstruction) -> Opcode | None:
        for extended_field, table in self._primary_tables[Opcode.decode_primary(encoded)]:
            opcode = table.get(0 if extended_field is None else extended_field.extract(encoded))
            if opcode is not None and opcode.matches(encoded):
                return opcode
        return None

    def _invalid_cause(self, encoded: EncodedInstruction) -> str:
        primary = Opcode.decode_primary(encoded)
        tables = self._primary_tables[primary]
        if not tables:
            return f'Invalid primary opcode 0x{primary:02X}'
        keys = ', '.join(f'{field.name}={field.extract(encoded)}' for field, _ in tables if field is not None)
        return f'Invalid extended opcode {keys} for primary opcode 0x{primary:02X}'

    @staticmethod
    def _create_invalid_instruction(encoded: EncodedInstruction, address: int, cause: str) -> InvalidInstruction:
        return InvalidInstruction(InvalidOpcode(encoded=encoded, cause=cause), address=address)


_decoder = Decoder()


def resolve(encoded: EncodedInstruction) -> tuple[Opcode, OpcodeArgs] | None:
    return _decoder.resolve(encoded)


def decode(encoded: EncodedInstruction, address: int = 0) -> Instruction:
    return _decoder.decode(encoded, address)
