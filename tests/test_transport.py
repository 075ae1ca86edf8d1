import struct
from unittest import mock

from hwwallet import transport_udp
from hwwallet.messages import MessageType, WireMessage, build
from hwwallet.transport import encode_frame, split_packets, PACKET_SIZE, REPORT_ID
from hwwallet.transport_udp import UDPTransport
from hwwallet.util import TransportError

from . import HwWalletTestCase, LoopbackTransport


class TestFraming(HwWalletTestCase):

    def test_encode_frame(self):
        frame = encode_frame(WireMessage(kind=MessageType.Ping, data=b'\x0a\x02hi'))
        self.assertEqual(b'##' + struct.pack('>HL', 1, 4) + b'\x0a\x02hi', frame)

    def test_split_packets_pads_to_report_size(self):
        packets = list(split_packets(b'x' * 100))
        self.assertEqual(2, len(packets))
        for packet in packets:
            self.assertEqual(PACKET_SIZE, len(packet))
            self.assertEqual(REPORT_ID, packet[:1])
        self.assertEqual(b'x' * 37 + b'\0' * 26, packets[1][1:])

    def test_write_then_read_large_message(self):
        payload = bytes(range(256)) * 4
        m = WireMessage(kind=MessageType.FirmwareUpload, data=payload)
        t = LoopbackTransport([m])
        t.open()
        self.assertEqual(m, t.read_blocking())

    def test_consecutive_frames(self):
        first = build(MessageType.ButtonRequest)
        second = build(MessageType.Success, message='done')
        t = LoopbackTransport([first, second])
        with t:
            self.assertEqual(first, t.read_blocking())
            self.assertEqual(second, t.read_blocking())

    def test_written_messages(self):
        t = LoopbackTransport()
        t.open()
        sent = [build(MessageType.Initialize), build(MessageType.Ping, message='p' * 80)]
        for m in sent:
            t.write(m)
        self.assertEqual(sent, t.written_messages())


class TestTransport(HwWalletTestCase):

    def test_closed_transport_refuses_io(self):
        t = LoopbackTransport()
        with self.assertRaises(TransportError):
            t.write(build(MessageType.Initialize))
        with self.assertRaises(TransportError):
            t.read_blocking()

    def test_open_and_close_are_idempotent(self):
        t = LoopbackTransport()
        t.open()
        t.open()
        self.assertTrue(t.is_open)
        t.close()
        t.close()
        self.assertFalse(t.is_open)

    def test_resync_skips_garbage_before_magic(self):
        t = LoopbackTransport()
        frame = encode_frame(build(MessageType.Success, message='ok'))
        t.feed_raw(REPORT_ID + (b'\x01' * 10 + frame).ljust(PACKET_SIZE - 1, b'\0'))
        t.open()
        self.assertEqual(MessageType.Success, t.read_blocking().kind)

    def test_resync_gives_up(self):
        t = LoopbackTransport()
        t.feed_raw(REPORT_ID + b'\x01' * (PACKET_SIZE - 1))
        t.feed_raw(REPORT_ID + b'\x01' * (PACKET_SIZE - 1))
        t.open()
        with self.assertRaises(TransportError):
            t.read_blocking()

    def test_broken_second_magic(self):
        t = LoopbackTransport()
        t.feed_raw(REPORT_ID + b'#x'.ljust(PACKET_SIZE - 1, b'\0'))
        t.open()
        with self.assertRaises(TransportError):
            t.read_blocking()

    def test_bad_report_id(self):
        t = LoopbackTransport()
        t.feed_raw(b'!' + b'##'.ljust(PACKET_SIZE - 1, b'\0'))
        t.open()
        with self.assertRaises(TransportError):
            t.read_blocking()

    def test_truncated_frame(self):
        t = LoopbackTransport()
        frame = encode_frame(WireMessage(kind=MessageType.Success, data=b'x' * 200))
        t.feed_raw(next(split_packets(frame)))
        t.open()
        with self.assertRaises(TransportError):
            t.read_blocking()

    def test_os_error_becomes_transport_error(self):
        t = LoopbackTransport()
        t.open()
        with mock.patch.object(t, '_write_packet', side_effect=OSError('unplugged')):
            with self.assertRaises(TransportError):
                t.write(build(MessageType.Initialize))
        with mock.patch.object(t, '_read_packet', side_effect=OSError('unplugged')):
            with self.assertRaises(TransportError):
                t.read_blocking()

    def test_open_failure_becomes_transport_error(self):
        t = LoopbackTransport()
        with mock.patch.object(t, '_open', side_effect=OSError('busy')):
            with self.assertRaises(TransportError):
                t.open()
        self.assertFalse(t.is_open)


class TestUDPTransport(HwWalletTestCase):

    def test_probe(self):
        sock = mock.MagicMock()
        sock.recv.return_value = b'PONGPONG'
        with mock.patch.object(transport_udp.socket, 'socket', return_value=sock):
            self.assertTrue(UDPTransport('127.0.0.1', 21324).is_reachable())
        sock.send.assert_called_once_with(b'PINGPING')
        sock.close.assert_called_once_with()

    def test_probe_timeout(self):
        sock = mock.MagicMock()
        sock.recv.side_effect = OSError('timed out')
        with mock.patch.object(transport_udp.socket, 'socket', return_value=sock):
            self.assertFalse(UDPTransport('127.0.0.1', 21324).is_reachable())
        sock.close.assert_called_once_with()

    def test_packets_go_out_as_datagrams(self):
        sock = mock.MagicMock()
        with mock.patch.object(transport_udp.socket, 'socket', return_value=sock):
            t = UDPTransport('127.0.0.1', 21324)
            t.open()
            t.write(build(MessageType.Ping, message='p' * 100))
            t.close()
        sock.connect.assert_called_once_with(('127.0.0.1', 21324))
        self.assertEqual(2, sock.send.call_count)
        for call in sock.send.call_args_list:
            self.assertEqual(PACKET_SIZE, len(call.args[0]))
        sock.close.assert_called_once_with()
