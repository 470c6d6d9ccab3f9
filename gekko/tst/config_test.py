import os
import tempfile
import unittest
from gekko.config import DEFAULT_CONFIG, EmitterConfig


class EmitterConfigTest(unittest.TestCase):
    def test_defaults(self):
        self.assertEqual(0x80000000, DEFAULT_CONFIG.guest_base)
        self.assertEqual('L_80003000', DEFAULT_CONFIG.label(0x80003000))
        self.assertEqual('fn_80003000', DEFAULT_CONFIG.function(0x80003000))

    def test_to_dict(self):
        data = EmitterConfig(memory_symbol='ram').to_dict()
        self.assertEqual('0x80000000', data['guest_base'])
        self.assertEqual('ram', data['memory_symbol'])
        self.assertEqual('translate_address', data['translate_function'])

    def test_from_dict(self):
        config = EmitterConfig.from_dict({'guest_base': '0x90000000', 'label_prefix': 'loc_'})
        self.assertEqual(EmitterConfig(guest_base=0x90000000, label_prefix='loc_'), config)
        self.assertEqual(config, EmitterConfig.from_dict(config.to_dict()))
        self.assertEqual(0x1000, EmitterConfig.from_dict({'guest_base': 0x1000}).guest_base)
        with self.assertRaises(ValueError):
            EmitterConfig.from_dict({'memory': 'ram'})

    def test_save_and_load(self):
        config = EmitterConfig(memory_symbol='ram', translate_function='virt_to_phys')
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, 'emitter.json')
            config.save(path)
            self.assertEqual(config, EmitterConfig.load(path))


if __name__ == '__main__':
    unittest.main()
