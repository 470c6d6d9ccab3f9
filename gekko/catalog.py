import dataclasses
import functools
import itertools
import logging
from gekko.opcodes.base import InvalidOpcode, Opcode, OpcodeArgs, PseudoOpcode
from gekko.opcodes.branch import BranchOpcodes, BranchPseudoOpcodes, CONDITIONAL_BRANCH_PSEUDO_OPCODES
from gekko.opcodes.floating import FloatOpcodes
from gekko.opcodes.integer import IntegerOpcodes, IntegerPseudoOpcodes
from gekko.opcodes.memory import MemoryOpcodes
from gekko.opcodes.paired import PairedOpcodes
from gekko.opcodes.rotate import RotateOpcodes, RotatePseudoOpcodes
from gekko.opcodes.system import SystemOpcodes, SystemPseudoOpcodes


logger = logging.getLogger(__name__)


class CatalogError(Exception):
    pass


def opcodes_of(namespace: type | dict) -> list[Opcode]:
    values = namespace.values() if isinstance(namespace, dict) else vars(namespace).values()
    return [value for value in values if isinstance(value, Opcode)]


@dataclasses.dataclass(frozen=True)
class Catalog:
    """Ordered instruction variants; true encodings first, then pseudo-ops.

    Only true encodings recognize words. Pseudo-ops are reached through
    ``classify`` once the true encoding has been decoded.
    """
    entries: tuple[Opcode, ...]

    @classmethod
    def build(cls, *namespaces: type | dict) -> 'Catalog':
        return cls(tuple(itertools.chain.from_iterable(opcodes_of(namespace) for namespace in namespaces)))

    @functools.cached_property
    def true_opcodes(self) -> tuple[Opcode, ...]:
        return tuple(entry for entry in self.entries if not isinstance(entry, PseudoOpcode))

    @functools.cached_property
    def pseudo_opcodes(self) -> tuple[PseudoOpcode, ...]:
        return tuple(entry for entry in self.entries if isinstance(entry, PseudoOpcode))

    @functools.cached_property
    def by_primary(self) -> dict[int, tuple[Opcode, ...]]:
        buckets: dict[int, list[Opcode]] = {}
        for opcode in self.true_opcodes:
            buckets.setdefault(opcode.primary_opcode, []).append(opcode)
        return {primary: tuple(opcodes) for primary, opcodes in buckets.items()}

    @functools.cached_property
    def _pseudo_by_base(self) -> dict[int, tuple[PseudoOpcode, ...]]:
        buckets: dict[int, list[PseudoOpcode]] = {}
        for pseudo_opcode in self.pseudo_opcodes:
            buckets.setdefault(id(pseudo_opcode.base), []).append(pseudo_opcode)
        return {base: tuple(pseudo_opcodes) for base, pseudo_opcodes in buckets.items()}

    @functools.cached_property
    def _by_name(self) -> dict[str, Opcode]:
        return {opcode.name: opcode for opcode in self.true_opcodes}

    def opcode(self, name: str) -> Opcode:
        return self._by_name[name]

    def classify(self, opcode: Opcode, args: OpcodeArgs) -> Opcode:
        for pseudo_opcode in self._pseudo_by_base.get(id(opcode), ()):
            if pseudo_opcode.applies(args):
                return pseudo_opcode
        return opcode

    def validate(self):
        true_ids = {id(opcode) for opcode in self.true_opcodes}
        names = set()
        for opcode in self.true_opcodes:
            if isinstance(opcode, InvalidOpcode):
                raise CatalogError(f'Invalid opcode registered as a variant: {opcode}')
            if opcode.name in names:
                raise CatalogError(f'Duplicate variant name {opcode.name}')
            names.add(opcode.name)
            mask, value = opcode.signature
            if not opcode.matches(opcode.encode(opcode.decode_args(value))):
                raise CatalogError(f'{opcode.name} does not recognize its own encoding')
        for pseudo_opcode in self.pseudo_opcodes:
            if id(pseudo_opcode.base) not in true_ids:
                raise CatalogError(f'{pseudo_opcode.name} refers to unregistered {pseudo_opcode.base.name}')
            if pseudo_opcode.matches(pseudo_opcode.signature[1]):
                raise CatalogError(f'{pseudo_opcode.name} recognizes words on its own')
        for opcodes in self.by_primary.values():
            for first, second in itertools.combinations(opcodes, 2):
                first_mask, first_value = first.signature
                second_mask, second_value = second.signature
                if (first_value ^ second_value) & first_mask & second_mask == 0:
                    raise CatalogError(f'{first.name} and {second.name} recognize the same words')
        logger.debug(
            f'Catalog valid: {len(self.true_opcodes)} variants, {len(self.pseudo_opcodes)} pseudo-ops')


CATALOG = Catalog.build(
    IntegerOpcodes, RotateOpcodes, BranchOpcodes, MemoryOpcodes, FloatOpcodes, PairedOpcodes, SystemOpcodes,
    IntegerPseudoOpcodes, RotatePseudoOpcodes, BranchPseudoOpcodes, CONDITIONAL_BRANCH_PSEUDO_OPCODES,
    SystemPseudoOpcodes)
CATALOG.validate()
