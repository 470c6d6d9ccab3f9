import unittest
from gekko import fields
from gekko.fields import Field


class FieldsTest(unittest.TestCase):
    def test_extract(self):
        descriptors = [
            (0x80000000, 0, 0, 1),
            (0x00000001, 31, 31, 1),
            (0xfc000000, 0, 5, 0x3f),
            (0x7c0802a6, 21, 30, 339),
            (0x7c642a14, 22, 30, 266),
            (0x0000ffff, 16, 31, 0xffff),
        ]
        for i, (encoded, start, end, expected) in enumerate(descriptors):
            value = fields.extract(encoded, start, end)
            if value != expected:
                self.fail(f"Descriptor #{i}. Bits {start}..{end} of 0x{encoded:08x}: {value} vs expected {expected}")

    def test_sign_extend(self):
        self.assertEqual(-1, fields.sign_extend(0xffff, 16))
        self.assertEqual(0x7fff, fields.sign_extend(0x7fff, 16))
        self.assertEqual(-2048, fields.sign_extend(0x800, 12))
        self.assertEqual(0x7ff, fields.sign_extend(0x7ff, 12))

    def test_signed_fields(self):
        self.assertEqual(-1, fields.SIMM.extract(0x3860ffff))
        self.assertEqual(-0x8000, fields.SIMM.extract(0x38608000))
        self.assertEqual(0x7fff, fields.SIMM.extract(0x38607fff))
        self.assertEqual(-8, fields.PS_D.extract(0xf041aff8))
        self.assertEqual(0x7ff, fields.PS_D.extract(0xe00007ff))
        self.assertEqual(0xff8, fields.PS_D.insert(-8))

    def test_displacement_fields(self):
        self.assertEqual(-8, fields.BD.extract(0x4200fff8))
        self.assertEqual(-0x8000, fields.BD.extract(0x42008000))
        self.assertEqual(0x7ffc, fields.BD.extract(0x42007fff))
        self.assertEqual(-16, fields.LI.extract(0x4bfffff1))
        self.assertEqual(0x01fffffc, fields.LI.extract(0x49ffffff))
        self.assertEqual(-0x02000000, fields.LI.extract(0x4a000000))
        self.assertEqual(0x03fffff0, fields.LI.insert(-16))
        self.assertEqual(0x0000fff8, fields.BD.insert(-8))

    def test_split_field(self):
        self.assertEqual(8, fields.SPR.extract(0x7c0802a6))
        self.assertEqual(912, fields.SPR.extract(0x7c70e2a6))
        self.assertEqual(268, fields.SPR.extract(0x7c6c42e6))
        self.assertEqual(0x0010e000, fields.SPR.insert(912))
        self.assertEqual(0x00080000, fields.SPR.insert(8))

    def test_masks(self):
        self.assertEqual(0xfc000000, fields.PRIMARY.mask)
        self.assertEqual(0x000007fe, fields.XO10.mask)
        self.assertEqual(0x000003fe, fields.XO9.mask)
        self.assertEqual(0x0000007e, fields.XO6.mask)
        self.assertEqual(0x0000003e, fields.XO5.mask)
        self.assertEqual(0x00000400, fields.OE.mask)
        self.assertEqual(0x00000001, fields.RC.mask)
        self.assertEqual(0x03800000, fields.CRFD.mask)
        self.assertEqual(0x000ff000, fields.CRM.mask)
        self.assertEqual(0x01fe0000, fields.FM.mask)

    def test_field_bounds(self):
        for field in fields.ALL:
            if not 0 <= field.start <= field.end <= 31:
                self.fail(f'{field.name} spans bits {field.start}..{field.end}')
            self.assertEqual(0, field.mask & ~0xffffffff)
            self.assertEqual(field.mask, Field.insert(field, 0xffffffff))

    def test_insert_truncates(self):
        self.assertEqual(0x03e00000, fields.D.insert(0xff))
        self.assertEqual(0x0000ffff, fields.SIMM.insert(-1))
        self.assertEqual(0x00000000, fields.RC.insert(2))


if __name__ == '__main__':
    unittest.main()
