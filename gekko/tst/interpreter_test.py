import struct
import unittest
import numpy as np
from gekko import decoder
from gekko.fragments import Binary, Const
from gekko.interpreter import Interpreter, InterpreterError, Transfer, translate_address
from gekko.opcodes.rotate import RotateOpcodes


ADDRESS = 0x80003000


class InterpreterTest(unittest.TestCase):
    def setUp(self):
        self.interpreter = Interpreter()
        self.context = self.interpreter.context

    def _execute(self, encoded: int) -> Transfer | None:
        instruction = decoder.decode(encoded, ADDRESS)
        self.assertTrue(instruction.is_valid(), f'0x{encoded:08x} did not decode')
        return self.interpreter.execute(instruction.emit())

    def _gpr(self, index: int) -> int:
        return self.context.gpr[index].value

    def _set_gpr(self, index: int, value: int):
        self.context.gpr[index].value = value & 0xffffffff

    def _special(self, name: str) -> int:
        return self.context.special[name].value

    def _set_special(self, name: str, value: int):
        self.context.special[name].value = value

    def _write_bytes(self, physical: int, data: bytes):
        self.context.memory[physical:physical + len(data)] = np.frombuffer(data, dtype=np.uint8)

    def _read_bytes(self, physical: int, size: int) -> bytes:
        return self.context.memory[physical:physical + size].tobytes()

    def test_immediate_arithmetic(self):
        self._set_gpr(1, 0x80001000)
        self._execute(0x3821fff0)  # addi r1, r1, -0x10
        self.assertEqual(0x80000ff0, self._gpr(1))
        self._execute(0x3860002a)  # li r3, 0x2a
        self.assertEqual(42, self._gpr(3))
        self._execute(0x3c608000)  # lis r3, 0x8000
        self.assertEqual(0x80000000, self._gpr(3))

    def test_xo_arithmetic(self):
        self._set_gpr(4, 0xffffffff)
        self._set_gpr(5, 0)
        self._execute(0x7c642a15)  # add. r3, r4, r5
        self.assertEqual(0xffffffff, self._gpr(3))
        self.assertEqual(0x80000000, self._special('cr'))

        self._set_gpr(5, 1)
        self._execute(0x7c642814)  # addc r3, r4, r5
        self.assertEqual(0, self._gpr(3))
        self.assertEqual(0x20000000, self._special('xer'))

        self._set_gpr(4, 1)
        self._execute(0x7c642914)  # adde r3, r4, r5
        self.assertEqual(3, self._gpr(3))

        self._set_gpr(4, 1)
        self._execute(0x7c6400d0)  # neg r3, r4
        self.assertEqual(0xffffffff, self._gpr(3))

    def test_division(self):
        descriptors = [
            (0x7c642bd6, -7, 2, 0xfffffffd),
            (0x7c642bd6, 7, -2, 0xfffffffd),
            (0x7c642bd6, 5, 0, 0),
            (0x7c642bd6, -0x80000000, 0, 0xffffffff),
            (0x7c642bd6, -0x80000000, -1, 0xffffffff),
            (0x7c642b96, 7, 2, 3),
            (0x7c642b96, 5, 0, 0),
        ]
        for i, (encoded, dividend, divisor, expected) in enumerate(descriptors):
            self._set_gpr(4, dividend)
            self._set_gpr(5, divisor)
            self._execute(encoded)
            if self._gpr(3) != expected:
                self.fail(f'Descriptor #{i}. {dividend} / {divisor}: 0x{self._gpr(3):08x} vs expected 0x{expected:08x}')

    def test_shifts_and_extensions(self):
        self._set_gpr(4, 0xfffffff5)
        self._execute(0x7c831670)  # srawi r3, r4, 2
        self.assertEqual(0xfffffffd, self._gpr(3))
        self.assertEqual(0x20000000, self._special('xer'))

        self._set_gpr(5, 31)
        for value, expected, carry in ((0x80000001, 0xffffffff, 0x20000000), (0x80000000, 0xffffffff, 0),
                                       (0x7fffffff, 0, 0)):
            self._set_gpr(4, value)
            self._execute(0x7c832e30)  # sraw r3, r4, r5
            self.assertEqual(expected, self._gpr(3))
            self.assertEqual(carry, self._special('xer'))

        self._set_gpr(4, 0x80)
        self._execute(0x7c830774)  # extsb r3, r4
        self.assertEqual(0xffffff80, self._gpr(3))

        self._set_gpr(4, 0x10000)
        self._execute(0x7c830034)  # cntlzw r3, r4
        self.assertEqual(15, self._gpr(3))

    def test_shift_pseudo_opcode_matches_rotate(self):
        instruction = decoder.decode(0x54831838, ADDRESS)  # clrlslwi r3, r4, 3, 3
        generic = RotateOpcodes.rlwinm.emit(instruction.args, ADDRESS)
        for value, expected in ((0x12345678, 0x91a2b3c0), (0xf0000001, 0x80000008)):
            for fragment in (instruction.emit(), generic):
                self._set_gpr(3, 0)
                self._set_gpr(4, value)
                self.interpreter.execute(fragment)
                self.assertEqual(expected, self._gpr(3))

    def test_rotate_insert(self):
        self._set_gpr(3, 0xffffffff)
        self._set_gpr(4, 0xab)
        self._execute(0x5083442e)  # insrwi r3, r4, 8, 16
        self.assertEqual(0xffffabff, self._gpr(3))

    def test_compares(self):
        self._set_gpr(3, -1)
        self._execute(0x2c030000)  # cmpwi r3, 0x0
        self.assertEqual(0x80000000, self._special('cr'))
        self._execute(0x28030000)  # cmplwi r3, 0x0
        self.assertEqual(0x40000000, self._special('cr'))
        self._set_gpr(3, 0)
        self._execute(0x2c030000)
        self.assertEqual(0x20000000, self._special('cr'))

    def test_condition_register(self):
        self._execute(0x4cc63242)  # crset 6
        self.assertEqual(0x02000000, self._special('cr'))

        self._set_special('cr', 0x80000000)
        self._execute(0x4c800000)  # mcrf cr1, cr0
        self.assertEqual(0x88000000, self._special('cr'))

        self._set_gpr(3, 0x12345678)
        self._execute(0x7c6ff120)  # mtcr r3
        self.assertEqual(0x12345678, self._special('cr'))
        self._set_gpr(3, 0)
        self._execute(0x7c600026)  # mfcr r3
        self.assertEqual(0x12345678, self._gpr(3))

    def test_integer_memory(self):
        self._set_gpr(1, 0x80001000)
        self._set_gpr(3, 0xdeadbeef)
        self._execute(0x90610000)  # stw r3, 0x0(r1)
        self.assertEqual(bytes.fromhex('deadbeef'), self._read_bytes(0x1000, 4))
        self._execute(0x80810000)  # lwz r4, 0x0(r1)
        self.assertEqual(0xdeadbeef, self._gpr(4))

        self._write_bytes(0x1000, bytes.fromhex('fffe'))
        self._execute(0xa8610000)  # lha r3, 0x0(r1)
        self.assertEqual(0xfffffffe, self._gpr(3))

        self._set_gpr(3, 0x01020304)
        self._set_gpr(4, 0x80000100)
        self._execute(0x7c60212e)  # stwx r3, 0, r4
        self.assertEqual(bytes.fromhex('01020304'), self._read_bytes(0x100, 4))

    def test_store_with_update(self):
        self._set_gpr(1, 0x80001000)
        self._execute(0x9421ffe0)  # stwu r1, -0x20(r1)
        self.assertEqual(bytes.fromhex('80001000'), self._read_bytes(0xfe0, 4))
        self.assertEqual(0x80000fe0, self._gpr(1))

    def test_byte_reversed_load(self):
        self._set_gpr(4, 0x80000000)
        self._set_gpr(5, 0x100)
        self._write_bytes(0x100, bytes.fromhex('11223344'))
        self._execute(0x7c642c2c)  # lwbrx r3, r4, r5
        self.assertEqual(0x44332211, self._gpr(3))

    def test_floating_memory(self):
        self._set_gpr(3, 0x80001000)
        self._write_bytes(0x1010, struct.pack('>I', 0x3fc00000))
        self._execute(0xc0230010)  # lfs f1, 0x10(r3)
        self.assertEqual(1.5, self.context.fpr[1].value)
        self.assertEqual(1.5, self.context.ps1[1].value)

        self._set_gpr(1, 0x80001000)
        self.context.fpr[31].value = 2.25
        self._execute(0xdbe1fff8)  # stfd f31, -0x8(r1)
        self.assertEqual(struct.pack('>Q', 0x4002000000000000), self._read_bytes(0xff8, 8))

    def test_single_precision_arithmetic(self):
        self.context.fpr[2].value = 0.1
        self.context.fpr[3].value = 0.2
        self._execute(0xec22182a)  # fadds f1, f2, f3
        self.assertEqual(float(np.float32(0.1 + 0.2)), self.context.fpr[1].value)

    def test_convert_to_integer_word(self):
        self._set_gpr(4, 0x80000200)
        descriptors = [
            (0xfc00081e, -2.7, 0xfffffffe),  # fctiwz f0, f1
            (0xfc00081c, 2.5, 2),  # fctiw f0, f1
            (0xfc00081c, 3.5, 4),
            (0xfc00081e, 1e12, 0x7fffffff),
        ]
        for i, (encoded, value, expected) in enumerate(descriptors):
            self.context.fpr[1].value = value
            self._execute(encoded)
            self._execute(0x7c0027ae)  # stfiwx f0, 0, r4
            stored = struct.unpack('>I', self._read_bytes(0x200, 4))[0]
            if stored != expected:
                self.fail(f'Descriptor #{i}. {value}: 0x{stored:08x} vs expected 0x{expected:08x}')

    def test_float_compare(self):
        self.context.fpr[1].value = 1.0
        self.context.fpr[2].value = 2.0
        self._execute(0xfc011000)  # fcmpu cr0, f1, f2
        self.assertEqual(0x80000000, self._special('cr'))
        self.assertEqual(0x8000, self._special('fpscr'))

        self.context.fpr[1].value = float('nan')
        self._execute(0xfc011000)
        self.assertEqual(0x10000000, self._special('cr'))
        self.assertEqual(0x1000, self._special('fpscr'))

    def test_quantized_float_load(self):
        self._set_gpr(3, 0x80001000)
        self._write_bytes(0x1000, struct.pack('>ff', 1.5, -2.0))
        self._execute(0xe0230000)  # psq_l f1, 0x0(r3), 0, 0
        self.assertEqual(1.5, self.context.fpr[1].value)
        self.assertEqual(-2.0, self.context.ps1[1].value)

    def test_quantized_integer_load(self):
        self._set_gpr(3, 0x80001000)
        self._set_special('gqr1', 0x02040000)
        self._write_bytes(0x1000, bytes([200]))
        self._execute(0xe0439000)  # psq_l f2, 0x0(r3), 1, 1
        self.assertEqual(50.0, self.context.fpr[2].value)
        self.assertEqual(1.0, self.context.ps1[2].value)

    def test_quantized_store_saturates(self):
        self._set_gpr(3, 0x80001000)
        self._set_special('gqr2', 7)
        self.context.fpr[1].value = -3.0
        self.context.ps1[1].value = 40000.0
        self._execute(0xf0232000)  # psq_st f1, 0x0(r3), 0, 2
        self.assertEqual(bytes.fromhex('fffd7fff'), self._read_bytes(0x1000, 4))

    def test_paired_arithmetic(self):
        self.context.fpr[2].value = 1.0
        self.context.ps1[2].value = 2.0
        self.context.fpr[3].value = 0.5
        self.context.ps1[3].value = 0.25
        self._execute(0x1022182a)  # ps_add f1, f2, f3
        self.assertEqual(1.5, self.context.fpr[1].value)
        self.assertEqual(2.25, self.context.ps1[1].value)

    def test_paired_merge(self):
        self.context.fpr[2].value = 1.0
        self.context.ps1[2].value = 2.0
        self.context.fpr[3].value = 3.0
        self.context.ps1[3].value = 4.0
        self._execute(0x10221ca0)  # ps_merge10 f1, f2, f3
        self.assertEqual(2.0, self.context.fpr[1].value)
        self.assertEqual(3.0, self.context.ps1[1].value)

    def test_counter_branch(self):
        self._set_special('ctr', 2)
        self.assertEqual(Transfer('goto', 0x80002ff8), self._execute(0x4200fff8))  # bdnz
        self.assertEqual(1, self._special('ctr'))
        self.assertIsNone(self._execute(0x4200fff8))
        self.assertEqual(0, self._special('ctr'))

    def test_calls_and_returns(self):
        self.assertEqual(Transfer('call', 0x80002ff0), self._execute(0x4bfffff1))  # bl
        self.assertEqual(0x80003004, self._special('lr'))
        self.assertEqual(Transfer('return'), self._execute(0x4e800020))  # blr

        self._set_special('ctr', 0x80004003)
        self._set_special('lr', 0)
        self.assertEqual(Transfer('call_indirect', 0x80004000), self._execute(0x4e800421))  # bctrl
        self.assertEqual(0x80003004, self._special('lr'))

    def test_conditional_branch(self):
        self._set_special('cr', 0x00000002)
        self.assertEqual(Transfer('goto', 0x80003010), self._execute(0x419e0010))  # beq cr7
        self._set_special('cr', 0)
        self.assertIsNone(self._execute(0x419e0010))

    def test_traps_and_system_calls(self):
        self.assertEqual(Transfer('system_call'), self._execute(0x44000002))  # sc
        self.assertEqual(Transfer('trap'), self._execute(0x7fe00008))  # trap
        self._set_gpr(3, 5)
        self._set_gpr(4, 5)
        self.assertEqual(Transfer('trap'), self._execute(0x7c832008))  # tw 4, r3, r4
        self._set_gpr(4, 6)
        self.assertIsNone(self._execute(0x7c832008))

    def test_return_from_interrupt(self):
        self._set_special('srr0', 0x80001235)
        self._set_special('srr1', 0x8000)
        self.assertEqual(Transfer('jump', 0x80001234), self._execute(0x4c000064))  # rfi
        self.assertEqual(0x8000, self._special('msr'))

    def test_special_registers(self):
        self._set_gpr(3, 0x00040004)
        self._execute(0x7c70e3a6)  # mtspr 912, r3
        self.assertEqual(0x00040004, self._special('gqr0'))
        self._execute(0x7c78e3a6)  # mtspr 920, r3
        self.assertEqual(0x00040004, self.context.spr[920].value)
        self.context.tb[0].value = 1234
        self._execute(0x7c6c42e6)  # mftb r3
        self.assertEqual(1234, self._gpr(3))

    def test_data_cache_block_zero(self):
        self._write_bytes(0xff8, b'\xff' * 48)
        self._set_gpr(3, 0x80001010)
        self._execute(0x7c001fec)  # dcbz 0, r3
        self.assertEqual(b'\xff' * 8, self._read_bytes(0xff8, 8))
        self.assertEqual(b'\x00' * 32, self._read_bytes(0x1000, 32))
        self.assertEqual(b'\xff' * 8, self._read_bytes(0x1020, 8))

    def test_store_multiple(self):
        self._set_gpr(1, 0x80001000)
        self._set_gpr(30, 0x11111111)
        self._set_gpr(31, 0x22222222)
        self._execute(0xbfc10008)  # stmw r30, 0x8(r1)
        self.assertEqual(bytes.fromhex('1111111122222222'), self._read_bytes(0x1008, 8))

    def test_reservation(self):
        self._set_gpr(4, 0x80000100)
        self._write_bytes(0x100, bytes.fromhex('00000007'))
        self._execute(0x7c602028)  # lwarx r3, 0, r4
        self.assertEqual(7, self._gpr(3))
        self._set_gpr(5, 8)
        self._execute(0x7ca0212d)  # stwcx. r5, 0, r4
        self.assertEqual(0x20000000, self._special('cr'))
        self.assertEqual(bytes.fromhex('00000008'), self._read_bytes(0x100, 4))
        self._set_gpr(5, 9)
        self._execute(0x7ca0212d)
        self.assertEqual(0, self._special('cr'))
        self.assertEqual(bytes.fromhex('00000008'), self._read_bytes(0x100, 4))

    def test_load_string_immediate(self):
        self._set_gpr(4, 0x80000100)
        self._write_bytes(0x100, b'abcdef')
        self._execute(0x7ca434aa)  # lswi r5, r4, 6
        self.assertEqual(0x61626364, self._gpr(5))
        self.assertEqual(0x65660000, self._gpr(6))

    def test_translate_address(self):
        self.assertEqual(0x00001234, translate_address(0x80001234))
        self.assertEqual(0x00001234, translate_address(0xc0001234))
        self.assertEqual(0x017fffff, translate_address(0x817fffff))
        self.assertEqual(0xcc000000, translate_address(0xcc000000))
        self.assertEqual(0x81800000, translate_address(0x81800000))

    def test_word_access(self):
        self.interpreter.write_word(0x80000400, 0xcafebabe)
        self.assertEqual(bytes.fromhex('cafebabe'), self._read_bytes(0x400, 4))
        self.assertEqual(0xcafebabe, self.interpreter.read_word(0xc0000400))

    def test_errors(self):
        self._set_gpr(3, 0x90000000)
        with self.assertRaises(InterpreterError):
            self._execute(0x80830000)  # lwz r4, 0x0(r3)
        with self.assertRaises(InterpreterError):
            self.interpreter.evaluate(Binary('/', Const(1), Const(0)))


if __name__ == '__main__':
    unittest.main()
