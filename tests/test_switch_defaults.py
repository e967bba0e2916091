import sys
import unittest
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from ciscoreset.console.context import EOF_SENTINEL
from ciscoreset.core.config import TemplateValidationError
from ciscoreset.core.models import LineConfig, SshConfig, SwitchDefaultsTemplate, SwitchPortConfig, VlanConfig
from ciscoreset.switches.defaults import SwitchDefaultsFSM

from console_fakes import FreshSwitchSimulator, is_subsequence, make_context, make_engine


def _full_template() -> SwitchDefaultsTemplate:
    return SwitchDefaultsTemplate(
        version=0.01,
        vlans=[
            VlanConfig(vlan=1, ip="10.0.0.2", mask="255.255.255.0"),
            VlanConfig(vlan=20, shutdown=True),
        ],
        ports=[
            SwitchPortConfig(name="fa0/1", mode="access", vlan=20),
            SwitchPortConfig(name="g0/1", mode="trunk", vlan=99),
            SwitchPortConfig(name="fa0/2", mode="dynamic", vlan=5, shutdown=True),
        ],
        lines=[LineConfig(type="vty", start_line=0, end_line=20, password="vty-pw", transport="ssh")],
        enable_password="en-pw",
        console_password="con-pw",
        banner="Lab switch",
        hostname="S1",
        domain_name="lab.local",
        default_gateway="10.0.0.254",
        ssh=SshConfig(enable=True, username="admin", password="admin-pw", key_bits=1024),
    )


class SwitchDefaultsTests(unittest.TestCase):
    def _run(self, template: SwitchDefaultsTemplate) -> tuple[FreshSwitchSimulator, SwitchDefaultsFSM]:
        switch = FreshSwitchSimulator()
        context = make_context(switch)
        fsm = SwitchDefaultsFSM(context, template, engine=make_engine(context))
        fsm.run()
        return switch, fsm

    def test_applies_full_template_in_order(self) -> None:
        switch, fsm = self._run(_full_template())

        self.assertIn("no", switch.commands)
        self.assertTrue(
            is_subsequence(
                [
                    "enable",
                    "conf t",
                    "inter vlan 1",
                    "ip addr 10.0.0.2 255.255.255.0",
                    "no shutdown",
                    "exit",
                    "inter vlan 20",
                    "shutdown",
                    "exit",
                    "inter fa0/1",
                    "switchport mode access",
                    "switchport access vlan 20",
                    "no shutdown",
                    "exit",
                    "inter g0/1",
                    "switchport mode trunk",
                    "switchport trunk native vlan 99",
                    "no shutdown",
                    "exit",
                    "inter fa0/2",
                    "switchport mode dynamic",
                    "shutdown",
                    "exit",
                    'banner motd "Lab switch"',
                    "line console 0",
                    "password con-pw",
                    "login",
                    "exit",
                    "enable secret en-pw",
                    "ip default-gateway 10.0.0.254",
                    "hostname S1",
                    "ip domain-name lab.local",
                    "username admin password admin-pw",
                    "crypto key gen rsa",
                    "1024",
                    "line vty 0 15",
                    "password vty-pw",
                    "login local",
                    "transport input ssh",
                    "exit",
                    "end",
                ],
                switch.commands,
            )
        )
        self.assertNotIn("switchport access vlan 5", switch.commands)
        self.assertEqual("S1", fsm.hostname)
        self.assertEqual("exec", switch.mode)

        history = fsm.context.progress.history
        self.assertIn("Waiting for the switch to start up", history)
        self.assertIn("Ending line of 20 is invalid, defaulting back to 15", history)
        self.assertIn("Switch port mode dynamic is not supported for static vlan assignment", history)
        self.assertEqual("Settings applied!", history[-4])
        self.assertEqual(EOF_SENTINEL, history[-1])

    def test_console_password_ignored_by_newer_templates(self) -> None:
        template = SwitchDefaultsTemplate(version=0.02, console_password="con-pw")
        switch, fsm = self._run(template)

        self.assertNotIn("line console 0", switch.commands)
        self.assertNotIn("password con-pw", switch.commands)
        self.assertEqual(EOF_SENTINEL, fsm.context.progress.history[-1])

    def test_switch_lines_go_up_to_fifteen(self) -> None:
        template = SwitchDefaultsTemplate(lines=[LineConfig(type="vty", start_line=5, end_line=15)])
        switch, fsm = self._run(template)

        self.assertIn("line vty 5 15", switch.commands)
        self.assertFalse(any("invalid" in message for message in fsm.context.progress.history))

    def test_start_after_end_fails_before_writing(self) -> None:
        switch = FreshSwitchSimulator()
        context = make_context(switch)
        template = SwitchDefaultsTemplate(lines=[LineConfig(type="vty", start_line=12, end_line=3)])
        fsm = SwitchDefaultsFSM(context, template, engine=make_engine(context))

        with self.assertRaises(TemplateValidationError):
            fsm.run()

        self.assertEqual([], switch.written)

    def test_ssh_skipped_without_prerequisites(self) -> None:
        template = SwitchDefaultsTemplate(hostname="S1", ssh=SshConfig(enable=True, username="admin", password="pw"))
        switch, fsm = self._run(template)

        history = fsm.context.progress.history
        self.assertIn("WARNING: Domain name not specified.", history)
        self.assertIn("Skipping SSH setup", history)
        self.assertNotIn("crypto key gen rsa", switch.commands)
        self.assertEqual(EOF_SENTINEL, history[-1])


if __name__ == "__main__":
    unittest.main()
