import logging
import sys
import tempfile
import unittest
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from ciscoreset.core.logging import (
    DEFAULT_LEVEL,
    LoggingConfig,
    PortContextFilter,
    SecretScrubberFilter,
    setup_logging,
)


def _record(message: str, *args, **extra) -> logging.LogRecord:
    record = logging.LogRecord("ciscoreset.test", logging.INFO, __file__, 1, message, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class SecretScrubberTests(unittest.TestCase):
    def setUp(self) -> None:
        self.scrubber = SecretScrubberFilter()

    def test_key_value_secrets(self) -> None:
        self.assertEqual("password=*** user=admin", self.scrubber.scrub("password=abc user=admin"))

    def test_ios_commands_in_transcripts(self) -> None:
        self.assertEqual(
            "to_device=b'enable secret ***\\n'", self.scrubber.scrub("to_device=b'enable secret cisco\\n'")
        )
        self.assertEqual("username admin password ***", self.scrubber.scrub("username admin password pw"))
        self.assertEqual("to_device=b'password ***\\n'", self.scrubber.scrub("to_device=b'password vty-pw\\n'"))

    def test_prose_is_untouched(self) -> None:
        self.assertEqual("Password recovery was enabled", self.scrubber.scrub("Password recovery was enabled"))

    def test_filter_rewrites_formatted_message(self) -> None:
        record = _record("to_device=%r", b"enable secret cisco\n")
        self.assertTrue(self.scrubber.filter(record))
        self.assertEqual("to_device=b'enable secret ***\\n'", record.getMessage())


class PortContextFilterTests(unittest.TestCase):
    def test_missing_context_becomes_dash(self) -> None:
        record = _record("hello")
        PortContextFilter().filter(record)
        self.assertEqual("-", record.port)
        self.assertEqual("-", record.run_id)

    def test_existing_port_is_kept(self) -> None:
        record = _record("hello", port="/dev/ttyUSB0", run_id="ttyUSB0_9600-8N1_20241106_192447")
        PortContextFilter().filter(record)
        self.assertEqual("/dev/ttyUSB0", record.port)
        self.assertEqual("ttyUSB0_9600-8N1_20241106_192447", record.run_id)


class LoggingConfigTests(unittest.TestCase):
    def test_section_values(self) -> None:
        config = LoggingConfig.from_section({"directory": "~/logs", "filename": "run.log", "level": "debug"})
        self.assertEqual(Path("~/logs").expanduser(), config.directory)
        self.assertEqual("run.log", config.filename)
        self.assertEqual(logging.DEBUG, config.level)

    def test_unknown_level_falls_back(self) -> None:
        self.assertEqual(DEFAULT_LEVEL, LoggingConfig.from_section({"level": "chatty"}).level)
        self.assertEqual(DEFAULT_LEVEL, LoggingConfig.from_section({"level": True}).level)

    def test_cli_level_wins(self) -> None:
        config = LoggingConfig.from_section({"level": "ERROR"}, cli_level=logging.DEBUG)
        self.assertEqual(logging.DEBUG, config.level)


class SetupLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root_logger = logging.getLogger()
        self._saved_handlers = list(self.root_logger.handlers)
        self._saved_level = self.root_logger.level

    def tearDown(self) -> None:
        for handler in self.root_logger.handlers:
            handler.close()
        self.root_logger.handlers[:] = self._saved_handlers
        self.root_logger.setLevel(self._saved_level)
        self._tmp.cleanup()

    def test_directory_and_level_from_local_config(self) -> None:
        log_dir = Path(self._tmp.name) / "logs"
        config_path = Path(self._tmp.name) / "local.yml"
        config_path.write_text(
            f"logging:\n  directory: {log_dir}\n  filename: run.log\n  level: WARNING\n", encoding="utf-8"
        )

        setup_logging(config_path)

        self.assertEqual(logging.WARNING, self.root_logger.level)
        self.assertTrue((log_dir / "run.log").exists())

    def test_cli_level_overrides_file(self) -> None:
        log_dir = Path(self._tmp.name) / "logs"
        config_path = Path(self._tmp.name) / "local.yml"
        config_path.write_text(f"logging:\n  directory: {log_dir}\n  level: WARNING\n", encoding="utf-8")

        setup_logging(config_path, cli_level=logging.DEBUG)

        self.assertEqual(logging.DEBUG, self.root_logger.level)
        self.assertEqual(logging.DEBUG, self.root_logger.handlers[1].level)

    def test_records_carry_run_context(self) -> None:
        log_dir = Path(self._tmp.name) / "logs"
        config_path = Path(self._tmp.name) / "local.yml"
        config_path.write_text(f"logging:\n  directory: {log_dir}\n", encoding="utf-8")

        logger = setup_logging(config_path)
        logger.info("enable secret cisco", extra={"port": "COM3", "run_id": "COM3_9600-8N1_20241106_192447"})
        for handler in self.root_logger.handlers:
            handler.flush()

        text = (log_dir / "ciscoreset.log").read_text(encoding="utf-8")
        self.assertIn("port=COM3 run=COM3_9600-8N1_20241106_192447", text)
        self.assertIn("enable secret ***", text)
        self.assertIn("port=- run=-", text)


if __name__ == "__main__":
    unittest.main()
