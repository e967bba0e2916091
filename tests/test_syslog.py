import sys
import unittest
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from ciscoreset.console.syslog import is_syslog

LOG_LINES = {
    "pki clock": "Nov  6 19:26:59.869: %PKI-2-NON_AUTHORITATIVE_CLOCK: PKI timers have not been initialized due to "
    "non-authoritative system clock. Ensure system clock is configured/updated.",
    "pki clock, starred": "*Nov  6 19:26:59.869: %PKI-2-NON_AUTHORITATIVE_CLOCK: PKI timers have not been "
    "initialized due to non-authoritative system clock. Ensure system clock is configured/updated.",
    "platform": "*Nov  6 19:24:47.888: %IOSXE-3-PLATFORM: F0: kernel: dash_c2w_op_done: I2C Master time out: "
    "status register - 0x0",
    "link down 0/0/0": "*Nov  6 19:26:48.860: %LINK-3-UPDOWN: Interface GigabitEthernet0/0/0, changed state to down",
    "link down 0/0/1": "*Nov  6 19:26:48.860: %LINK-3-UPDOWN: Interface GigabitEthernet0/0/1, changed state to down",
    "lineproto down 0/0/0": "*Nov  6 21:49:50.976: %LINEPROTO-5-UPDOWN: Line protocol on Interface "
    "GigabitEthernet0/0/0, changed state to down",
    "lineproto down 0/0/1": "*Nov  6 21:49:50.976: %LINEPROTO-5-UPDOWN: Line protocol on Interface "
    "GigabitEthernet0/0/1, changed state to down",
    "link up 0/0/0": "*Nov  6 21:45:51.955: %LINK-3-UPDOWN: Interface GigabitEthernet0/0/0, changed state to up",
    "link up 0/0/1": "*Nov  6 21:45:51.955: %LINK-3-UPDOWN: Interface GigabitEthernet0/0/1, changed state to up",
    "lineproto up 0/0/0": "*Nov  6 21:45:52.956: %LINEPROTO-5-UPDOWN: Line protocol on Interface "
    "GigabitEthernet0/0/0, changed state to up",
    "lineproto up 0/0/1": "*Nov  6 21:45:52.956: %LINEPROTO-5-UPDOWN: Line protocol on Interface "
    "GigabitEthernet0/0/1, changed state to up",
    "private config": "*Nov  6 21:17:38.691: %SYS-2-PRIVCFG_ENCRYPT: Successfully encrypted private config file",
    "reload": "*Nov  6 21:18:42.901: %SYS-5-RELOAD: Reload requested by console. Reload Reason: Reload Command.",
    "nvram init": "*Nov  6 21:15:38.133: %SYS-7-NV_BLOCK_INIT: Initialized the geometry of nvram",
    "config change": "*Nov  6 21:15:29.667: %SYS-5-CONFIG_I: Configured from console by console",
    "sequence number and year": "000045: .Nov  6 2024 19:24:47 UTC: %LINK-3-UPDOWN: Interface "
    "GigabitEthernet0/0/0, changed state to up",
}

REPLY_LINES = [
    "Router#",
    "Router(config)#",
    "rommon 1 > confreg 0x2142",
    "confreg 0x2142",
    "Press RETURN to get started!",
    "switch:",
    "Enter configuration commands, one per line.  End with CNTL/Z.",
    "% Invalid input detected at '^' marker.",
    "",
]


class IsSyslogTests(unittest.TestCase):
    def test_device_log_messages_are_noise(self) -> None:
        for name, line in LOG_LINES.items():
            with self.subTest(name=name):
                self.assertTrue(is_syslog(line))

    def test_prompts_and_echoes_are_not_noise(self) -> None:
        for line in REPLY_LINES:
            with self.subTest(line=line):
                self.assertFalse(is_syslog(line))

    def test_raw_bytes_with_padding(self) -> None:
        raw = b"\x00\x00*Nov  6 21:15:29.667: %SYS-5-CONFIG_I: Configured from console by console\r\n"
        self.assertTrue(is_syslog(raw))


if __name__ == "__main__":
    unittest.main()
