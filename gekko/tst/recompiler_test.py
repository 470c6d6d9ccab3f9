import concurrent.futures
import unittest
from gekko.config import EmitterConfig
from gekko.recompiler import Recompiler, words_from_bytes


BASE_ADDRESS = 0x80003000


class RecompilerTest(unittest.TestCase):
    def test_words_from_bytes(self):
        self.assertEqual([0x3860002a, 0x4e800020], words_from_bytes(bytes.fromhex('3860002a4e800020')))
        self.assertEqual([], words_from_bytes(b''))
        with self.assertRaises(ValueError):
            words_from_bytes(bytes.fromhex('3860002a4e80'))

    def test_recompile_image(self):
        recompiled = Recompiler().recompile_image(bytes.fromhex('3860002a4e800020'), BASE_ADDRESS)
        self.assertEqual(['li r3, 0x2a', 'blr'], [instruction.text for instruction in recompiled])
        self.assertEqual([0x80003000, 0x80003004], [instruction.address for instruction in recompiled])
        self.assertEqual([0x3860002a, 0x4e800020], [instruction.encoded for instruction in recompiled])
        self.assertTrue(all(instruction.valid for instruction in recompiled))
        self.assertEqual('r3 = 42;', recompiled[0].render())

    def test_unrecognized_words_are_reported(self):
        recompiler = Recompiler()
        with self.assertLogs('gekko.recompiler', 'WARNING') as logs:
            recompiled = recompiler.recompile_words([0x60000000, 0x00000000], BASE_ADDRESS)
        self.assertTrue(recompiled[0].valid)
        self.assertFalse(recompiled[1].valid)
        self.assertEqual('invalid 0x00000000', recompiled[1].text)
        self.assertEqual(1, len(logs.output))
        self.assertIn('0x80003004', logs.output[0])

    def test_render(self):
        recompiler = Recompiler()
        recompiled = recompiler.recompile_words([0x3860002a, 0x4e800020], BASE_ADDRESS)
        self.assertEqual(
            'L_80003000:  /* li r3, 0x2a */\n'
            '    r3 = 42;\n'
            'L_80003004:  /* blr */\n'
            '    return;',
            recompiler.render(recompiled))

    def test_render_block_fragment(self):
        recompiler = Recompiler()
        recompiled = recompiler.recompile_words([0x9421ffe0], BASE_ADDRESS)
        self.assertEqual(
            'L_80003000:  /* stwu r1, -0x20(r1) */\n'
            '    {\n'
            '        u32 ea = r1 - 0x20;\n'
            '        *(u32 *)(mem + (ea - 0x80000000)) = r1;\n'
            '        r1 = ea;\n'
            '    }',
            recompiler.render(recompiled))

    def test_custom_labels(self):
        recompiler = Recompiler(EmitterConfig(label_prefix='loc_', function_prefix='sub_'))
        recompiled = recompiler.recompile_words([0x4200fff8, 0x4bfffff1], BASE_ADDRESS)
        self.assertEqual(
            'loc_80003000:  /* bdnz 0x80002ff8 */\n'
            '    ctr = ctr - 1;\n'
            '    if (ctr != 0) goto loc_80002ff8;\n'
            'loc_80003004:  /* bl 0x80002ff4 */\n'
            '    lr = 0x80003008;\n'
            '    sub_80002ff4();',
            recompiler.render(recompiled))

    def test_chunked_parallel_recompilation(self):
        words = [0x3860002a, 0x7c642a14, 0x00000000, 0x48000010, 0x4e800020]
        sequential = Recompiler(chunk_size=2).recompile_words(words, BASE_ADDRESS)
        with concurrent.futures.ThreadPoolExecutor(max_workers=2) as executor:
            parallel = Recompiler(chunk_size=2).recompile_words(words, BASE_ADDRESS, executor)
        self.assertEqual(sequential, parallel)
        self.assertEqual(
            [BASE_ADDRESS + 4 * i for i in range(len(words))], [instruction.address for instruction in parallel])

    def test_recompile_word(self):
        instruction = Recompiler().recompile_word(0x48000010, BASE_ADDRESS)
        self.assertEqual('b 0x80003010', instruction.text)
        self.assertEqual(frozenset({0x80003010}), instruction.fragment.branch_targets())


if __name__ == '__main__':
    unittest.main()
