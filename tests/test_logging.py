import asyncio
import logging

import pytest

from firstly_logging import LOG_FILE_NAME, configure_logging, guard_event_loop


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)


@pytest.mark.unit
class TestConfigureLogging:
    def test_writes_to_rotating_file(self, tmp_path, restore_root_logger):
        configure_logging("debug", tmp_path / "logs")
        logging.getLogger("firstlybot.test").debug("hello_file key=%s", 1)
        for handler in restore_root_logger.handlers:
            handler.flush()

        text = (tmp_path / "logs" / LOG_FILE_NAME).read_text(encoding="utf-8")
        assert "DEBUG firstlybot.test hello_file key=1" in text
        assert restore_root_logger.level == logging.DEBUG

    def test_reconfigure_replaces_handlers(self, tmp_path, restore_root_logger):
        configure_logging("INFO", tmp_path)
        configure_logging("WARNING", tmp_path)
        assert len(restore_root_logger.handlers) == 2
        assert restore_root_logger.level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, tmp_path, restore_root_logger):
        configure_logging("chatty", tmp_path)
        assert restore_root_logger.level == logging.INFO


class TestGuardEventLoop:
    @pytest.mark.asyncio
    async def test_installs_once_and_logs(self, caplog):
        loop = asyncio.get_running_loop()
        previous = loop.get_exception_handler()
        try:
            assert guard_event_loop(loop) is True
            assert guard_event_loop(loop) is False
            with caplog.at_level(logging.ERROR, logger="firstlybot"):
                loop.call_exception_handler({"message": "orphan failed", "exception": RuntimeError("x")})
            assert "loop_exception message=orphan failed" in caplog.text
        finally:
            loop.set_exception_handler(previous)
