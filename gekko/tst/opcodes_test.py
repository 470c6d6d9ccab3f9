import unittest
import typing
from gekko import decoder, registers
from gekko.catalog import CATALOG
from gekko.config import EmitterConfig
from gekko.opcodes.base import InvalidInstruction, OpcodeArgs
from gekko.opcodes.integer import IntegerOpcodes
from gekko.opcodes.rotate import RotateOpcodes
from gekko.tst.reference_assembler import assemble


ADDRESS = 0x80003000


class OpcodesTest(unittest.TestCase):
    def test_valid_opcodes(self):
        descriptors = [
            (0x3860002a, 'li r3, 0x2a'),
            (0x38610008, 'addi r3, r1, 0x8'),
            (0x3821fff0, 'addi r1, r1, -0x10'),
            (0x386d0010, 'la r3, 0x10(r13)'),
            (0x3c608000, 'lis r3, 0x8000'),
            (0x60000000, 'nop'),
            (0x60831234, 'ori r3, r4, 0x1234'),
            (0x70600001, 'andi. r0, r3, 0x1'),
            (0x7c642a14, 'add r3, r4, r5'),
            (0x7c642e15, 'addo. r3, r4, r5'),
            (0x7c642850, 'sub r3, r5, r4'),
            (0x7c6429d6, 'mullw r3, r4, r5'),
            (0x7c642b96, 'divwu r3, r4, r5'),
            (0x7c6400d0, 'neg r3, r4'),
            (0x7c832378, 'mr r3, r4'),
            (0x7c032000, 'cmpw r3, r4'),
            (0x2f830000, 'cmpwi cr7, r3, 0x0'),
            (0x2803ffff, 'cmplwi r3, 0xffff'),
            (0x7c831670, 'srawi r3, r4, 2'),
            (0x7c830734, 'extsh r3, r4'),
            (0x7c830034, 'cntlzw r3, r4'),
            (0x54831838, 'clrlslwi r3, r4, 3, 3'),
            (0x5483043e, 'clrlwi r3, r4, 16'),
            (0x5483f0be, 'srwi r3, r4, 2'),
            (0x5483263c, 'rlwinm r3, r4, 4, 24, 30'),
            (0x5083442e, 'insrwi r3, r4, 8, 16'),
            (0x48000010, 'b 0x80003010'),
            (0x4bfffff1, 'bl 0x80002ff0'),
            (0x4200fff8, 'bdnz 0x80002ff8'),
            (0x4300fff8, 'bdnz 0x80002ff8'),
            (0x4320fff8, 'bdnz 0x80002ff8'),
            (0x43400010, 'bdz 0x80003010'),
            (0x4f000020, 'bdnzlr'),
            (0x419e0010, 'beq cr7, 0x80003010'),
            (0x40820008, 'bne 0x80003008'),
            (0x42800010, 'bc 20, 0, 0x80003010'),
            (0x4e800020, 'blr'),
            (0x4d820020, 'beqlr'),
            (0x4e800420, 'bctr'),
            (0x4e800421, 'bctrl'),
            (0x4cc63242, 'crset 6'),
            (0x4cc63182, 'crclr 6'),
            (0x4c800000, 'mcrf cr1, cr0'),
            (0x80610008, 'lwz r3, 0x8(r1)'),
            (0x9421ffe0, 'stwu r1, -0x20(r1)'),
            (0x88030000, 'lbz r0, 0x0(r3)'),
            (0x7c60212e, 'stwx r3, 0, r4'),
            (0x7c65212e, 'stwx r3, r5, r4'),
            (0xc0230010, 'lfs f1, 0x10(r3)'),
            (0xdbe1fff8, 'stfd f31, -0x8(r1)'),
            (0xbba10014, 'lmw r29, 0x14(r1)'),
            (0x7c602028, 'lwarx r3, 0, r4'),
            (0x7c60212d, 'stwcx. r3, 0, r4'),
            (0x7c642c2c, 'lwbrx r3, r4, r5'),
            (0x7ca444aa, 'lswi r5, r4, 8'),
            (0xfc22182a, 'fadd f1, f2, f3'),
            (0xec2200f2, 'fmuls f1, f2, f3'),
            (0xfc2220fa, 'fmadd f1, f2, f3, f4'),
            (0xfc011000, 'fcmpu cr0, f1, f2'),
            (0xfc201090, 'fmr f1, f2'),
            (0xfc201018, 'frsp f1, f2'),
            (0xfc00081e, 'fctiwz f0, f1'),
            (0xfc00048e, 'mffs f0'),
            (0xfdfe058e, 'mtfsf 0xff, f0'),
            (0xec201030, 'fres f1, f2'),
            (0xe0230008, 'psq_l f1, 0x8(r3), 0, 0'),
            (0xf041aff8, 'psq_st f2, -0x8(r1), 1, 2'),
            (0x1023200c, 'psq_lx f1, r3, r4, 0, 0'),
            (0x1022182a, 'ps_add f1, f2, f3'),
            (0x102220dc, 'ps_madds0 f1, f2, f3, f4'),
            (0x10221ca0, 'ps_merge10 f1, f2, f3'),
            (0x10201090, 'ps_mr f1, f2'),
            (0x108218c0, 'ps_cmpo1 cr1, f2, f3'),
            (0x44000002, 'sc'),
            (0x4c000064, 'rfi'),
            (0x4c00012c, 'isync'),
            (0x7c0004ac, 'sync'),
            (0x7c0802a6, 'mflr r0'),
            (0x7c6903a6, 'mtctr r3'),
            (0x7c70e2a6, 'mfspr r3, 912'),
            (0x7c70e3a6, 'mtspr 912, r3'),
            (0x7c6c42e6, 'mftb r3'),
            (0x7c6ff120, 'mtcr r3'),
            (0x7c600026, 'mfcr r3'),
            (0x7c6000a6, 'mfmsr r3'),
            (0x7c6101a4, 'mtsr 1, r3'),
            (0x7c602526, 'mfsrin r3, r4'),
            (0x7c001fec, 'dcbz 0, r3'),
            (0x7c0320ac, 'dcbf r3, r4'),
            (0x7fe00008, 'trap'),
            (0x0fe00000, 'twi 31, r0, 0x0'),
        ]
        for i, descriptor in enumerate(descriptors):
            encoded, expected_instruction_string = descriptor
            instruction = decoder.decode(encoded, ADDRESS)
            instruction_string = instruction.to_string()
            if instruction_string != expected_instruction_string:
                self.fail(
                    f"Instruction #{i}. Encoded: 0x{encoded:08x}. "
                    f"Decoded: {instruction.opcode.name} {instruction.args}. "
                    f"Mnemonic: '{instruction_string}' vs expected '{expected_instruction_string}'")
            encoded_back = instruction.encode()
            if encoded != encoded_back:
                self.fail(
                    f"Instruction #{i}. Encoded {encoded:08x}. "
                    f"Decoded: {instruction.opcode.name} {instruction.args}. "
                    f"Encoded back {encoded_back:08x} differs.")

    def test_invalid_opcodes(self):
        descriptors = [
            (0x00000000, 'Invalid primary opcode 0x00'),
            (0x04000000, 'Invalid primary opcode 0x01'),
            (0x58000000, 'Invalid primary opcode 0x16'),
            (0x7c60242a, 'Invalid extended opcode xo10=533, xo9=21 for primary opcode 0x1F'),
            (0x7c60226c, 'Invalid extended opcode xo10=310, xo9=310 for primary opcode 0x1F'),
            (0x4c000002, 'Invalid extended opcode xo10=1 for primary opcode 0x13'),
            (0xec000000, 'Invalid extended opcode xo5=0 for primary opcode 0x3B'),
            (0xfc000426, 'Invalid extended opcode xo5=19, xo10=531 for primary opcode 0x3F'),
            (0x10000010, 'Invalid extended opcode xo6=8, xo5=8, xo10=8 for primary opcode 0x04'),
        ]
        for i, descriptor in enumerate(descriptors):
            encoded, expected_cause = descriptor
            instruction = decoder.decode(encoded, ADDRESS)
            instruction_string = instruction.to_string()
            if instruction.is_valid() or instruction_string != f'invalid 0x{encoded:08x}':
                self.fail(f"Instruction #{i}. Encoded: 0x{encoded:08x}. Valid instruction: {instruction_string}.")
            instruction = typing.cast(InvalidInstruction, instruction)
            if instruction.opcode.cause != expected_cause:
                self.fail(
                    f"Instruction #{i}. Encoded: 0x{encoded:08x}. "
                    f"Cause '{instruction.opcode.cause}' vs expected '{expected_cause}'.")
            encoded_back = instruction.encode()
            if encoded != encoded_back:
                self.fail(f"Instruction #{i}. Encoded {encoded:08x}. Encoded back {encoded_back:08x} differs.")
            if decoder.resolve(encoded) is not None:
                self.fail(f"Instruction #{i}. Encoded {encoded:08x} resolves to a variant.")

    def test_emitted_fragments(self):
        descriptors = [
            (0x3860002a, 'r3 = 42;'),
            (0x3821fff0, 'r1 = r1 - 0x10;'),
            (0x60000000, ';'),
            (0x4200fff8, 'ctr = ctr - 1;\nif (ctr != 0) goto L_80002ff8;'),
            (0x48000010, 'goto L_80003010;'),
            (0x4bfffff1, 'lr = 0x80003004;\nfn_80002ff0();'),
            (0x4e800020, 'return;'),
            (0x7c60212e, '*(u32 *)translate_address(r4) = r3;'),
            (0x7c65212e, '*(u32 *)(mem + ((r5 + r4) - 0x80000000)) = r3;'),
            (0x80610008, 'r3 = *(u32 *)(mem + ((r1 + 8) - 0x80000000));'),
            (0x9421ffe0, '{\n    u32 ea = r1 - 0x20;\n    *(u32 *)(mem + (ea - 0x80000000)) = r1;\n    r1 = ea;\n}'),
            (0x54831838, 'r3 = (r4 << 3) & 0xfffffff8;'),
            (0x7c0802a6, 'r0 = lr;'),
            (0xe0230008, 'f1 = psq_load(r3 + 8, gqr0, 0);\nps1[1] = psq_load(r3 + 8, gqr0, 1);'),
            (0x44000002, 'system_call();'),
            (0x7fe00008, 'trap();'),
            (0x7c0320ac, ';  /* dcbf: data cache block flush */'),
            (0x00000000, ';  /* unrecognized instruction 0x00000000: Invalid primary opcode 0x00 */\ntrap();'),
        ]
        for i, descriptor in enumerate(descriptors):
            encoded, expected_text = descriptor
            text = decoder.decode(encoded, ADDRESS).emit().render()
            if text != expected_text:
                self.fail(f"Fragment #{i}. Encoded: 0x{encoded:08x}. Text:\n{text}\nvs expected:\n{expected_text}")

    def test_direct_and_translated_addressing(self):
        config = EmitterConfig(guest_base=0x80000000, memory_symbol='ram', translate_function='virt_to_phys')
        translated = decoder.decode(0x7c60212e).emit().render(config)
        direct = decoder.decode(0x7c65212e).emit().render(config)
        self.assertEqual('*(u32 *)virt_to_phys(r4) = r3;', translated)
        self.assertEqual('*(u32 *)(ram + ((r5 + r4) - 0x80000000)) = r3;', direct)
        absolute = decoder.decode(0x80600010).emit().render()
        self.assertEqual('r3 = *(u32 *)translate_address(0x10);', absolute)

    def test_fragment_inspection(self):
        bdnz = decoder.decode(0x4200fff8, ADDRESS).emit()
        self.assertEqual(frozenset({'ctr'}), bdnz.registers())
        self.assertEqual(frozenset({0x80002ff8}), bdnz.branch_targets())
        stwu = decoder.decode(0x9421ffe0, ADDRESS).emit()
        self.assertEqual(frozenset({'r1'}), stwu.registers())
        self.assertEqual(frozenset(), stwu.branch_targets())
        bl = decoder.decode(0x4bfffff1, ADDRESS).emit()
        self.assertEqual(frozenset({'lr'}), bl.registers())
        self.assertEqual(frozenset({0x80002ff0}), bl.branch_targets())

    def test_classification_keeps_true_variant(self):
        instruction = decoder.decode(0x3860002a)
        self.assertIs(IntegerOpcodes.addi, instruction.opcode)
        self.assertEqual('li', instruction.form.name)
        self.assertEqual('addi r3, r0, 0x2a', instruction.opcode.to_string(instruction.args))
        resolved = decoder.resolve(0x3860002a)
        self.assertIsNotNone(resolved)
        opcode, args = resolved
        self.assertIs(IntegerOpcodes.addi, opcode)
        self.assertEqual(OpcodeArgs(rd=registers.gpr_by_index[3], ra=registers.gpr_by_index[0], imm=42), args)

    def test_shift_pseudo_opcode_emission_matches_rotate(self):
        instruction = decoder.decode(0x54831838)
        generic = RotateOpcodes.rlwinm.emit(instruction.args)
        self.assertEqual('r3 = ((r4 << 3) | (r4 >> 0x1d)) & 0xfffffff8;', generic.render())
        self.assertEqual('r3 = (r4 << 3) & 0xfffffff8;', instruction.emit().render())

    def test_sraw_lost_bits_mask_is_unsigned(self):
        rendered = decoder.decode(0x7c832e30).emit().render()
        self.assertIn('~(0xffffffff << n)', rendered)
        self.assertNotIn('1 << n', rendered)

    def test_emission_is_idempotent(self):
        for encoded in (0x3860002a, 0x9421ffe0, 0x4200fff8, 0xe0230008, 0x7c642e15, 0xfc011000):
            first = decoder.decode(encoded, ADDRESS)
            second = decoder.decode(encoded, ADDRESS)
            self.assertEqual(first, second)
            self.assertEqual(first.emit(), second.emit())
            self.assertEqual(first.emit().render(), first.emit().render())
            self.assertEqual(first.to_string(), second.to_string())

    def test_generic_text_round_trip(self):
        fills = (0x00000000, 0x03ffffff, 0x01234567, 0x02aaaaaa, 0x00555555)
        for opcode in CATALOG.true_opcodes:
            mask, value = opcode.signature
            for fill in fills:
                encoded = value | (fill & ~mask & 0xffffffff)
                instruction = decoder.decode(encoded, ADDRESS)
                if instruction.opcode is not opcode:
                    self.fail(f"{opcode.name}: 0x{encoded:08x} decoded as {instruction.opcode.name}")
                canonical = opcode.encode(instruction.args)
                text = opcode.to_string(instruction.args, ADDRESS)
                assembled = assemble(text, ADDRESS)
                if assembled != canonical:
                    self.fail(
                        f"{opcode.name}: 0x{encoded:08x}. Text '{text}' assembled to 0x{assembled:08x} "
                        f"instead of 0x{canonical:08x}")
                if decoder.decode(canonical, ADDRESS).to_string() != instruction.to_string():
                    self.fail(f"{opcode.name}: canonical 0x{canonical:08x} reads differently from 0x{encoded:08x}")


if __name__ == '__main__':
    unittest.main()
