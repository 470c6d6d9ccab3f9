import dataclasses
import unittest
from gekko import decoder, fields
from gekko.catalog import CATALOG, Catalog, CatalogError
from gekko.opcodes.base import PseudoOpcode
from gekko.opcodes.integer import IntegerOpcodes, IntegerPseudoOpcodes


class CatalogTest(unittest.TestCase):
    def test_catalog_is_valid(self):
        CATALOG.validate()
        self.assertTrue(all(not isinstance(opcode, PseudoOpcode) for opcode in CATALOG.true_opcodes))
        self.assertTrue(all(opcode.matches(opcode.signature[1]) for opcode in CATALOG.true_opcodes))
        for pseudo_opcode in CATALOG.pseudo_opcodes:
            if pseudo_opcode.matches(pseudo_opcode.signature[1]):
                self.fail(f'{pseudo_opcode.name} recognizes words on its own')

    def test_extended_opcode_partition(self):
        fills = (0x00000000, 0xffffffff, 0x55555555, 0xaaaaaaaa)
        for primary, opcodes in CATALOG.by_primary.items():
            if all(opcode.extended_field is None for opcode in opcodes):
                continue
            for extended in range(1 << fields.XO10.width):
                for fill in fills:
                    encoded = (
                        fields.PRIMARY.insert(primary) | fields.XO10.insert(extended) |
                        (fill & ~(fields.PRIMARY.mask | fields.XO10.mask) & 0xffffffff))
                    matching = [opcode for opcode in opcodes if opcode.matches(encoded)]
                    if len(matching) > 1:
                        self.fail(
                            f'0x{encoded:08x} recognized by {", ".join(opcode.name for opcode in matching)}')
                    resolved = decoder.resolve(encoded)
                    if matching and (resolved is None or resolved[0] is not matching[0]):
                        self.fail(f'0x{encoded:08x} resolves differently from {matching[0].name}')
                    if not matching and resolved is not None:
                        self.fail(f'0x{encoded:08x} resolves to {resolved[0].name} which does not match it')

    def test_primary_opcode_coverage(self):
        for primary in range(1 << fields.PRIMARY.width):
            encoded = fields.PRIMARY.insert(primary)
            matching = [opcode for opcode in CATALOG.by_primary.get(primary, ()) if opcode.matches(encoded)]
            self.assertLessEqual(len(matching), 1)
        for primary in (0, 1, 2, 5, 6, 9, 22, 30, 58, 62):
            self.assertNotIn(primary, CATALOG.by_primary)

    def test_duplicate_names_rejected(self):
        catalog = Catalog((IntegerOpcodes.addi, IntegerOpcodes.addi))
        with self.assertRaises(CatalogError):
            catalog.validate()

    def test_overlapping_variants_rejected(self):
        shadow = dataclasses.replace(IntegerOpcodes.addi, name='addi_shadow')
        with self.assertRaises(CatalogError):
            Catalog((IntegerOpcodes.addi, shadow)).validate()

    def test_pseudo_opcode_needs_registered_base(self):
        with self.assertRaises(CatalogError):
            Catalog((IntegerOpcodes.addis, IntegerPseudoOpcodes.li)).validate()

    def test_classification_order(self):
        args = IntegerOpcodes.addi.decode_args(0x3860002a)
        self.assertIs(IntegerPseudoOpcodes.li, CATALOG.classify(IntegerOpcodes.addi, args))
        args = IntegerOpcodes.addi.decode_args(0x386d0010)
        self.assertIs(IntegerPseudoOpcodes.la, CATALOG.classify(IntegerOpcodes.addi, args))
        args = IntegerOpcodes.addi.decode_args(0x38610008)
        self.assertIs(IntegerOpcodes.addi, CATALOG.classify(IntegerOpcodes.addi, args))

    def test_lookup_by_name(self):
        self.assertIs(IntegerOpcodes.or_, CATALOG.opcode('or'))
        self.assertEqual('stwcx.', CATALOG.opcode('stwcx.').name)
        with self.assertRaises(KeyError):
            CATALOG.opcode('li')


if __name__ == '__main__':
    unittest.main()
