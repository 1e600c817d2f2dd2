"""
Tests for logging configuration.
"""

import logging

from uichecker.log_setup import configure_logging


class TestConfigureLogging:
    """Tests for configure_logging."""

    def teardown_method(self):
        configure_logging(None)

    def test_appends_to_log_file(self, tmp_path):
        """Messages are appended to the file, earlier content is kept."""
        log_file = tmp_path / "logs" / "server.log"
        log_file.parent.mkdir()
        log_file.write_text("earlier\n")

        configure_logging(log_file)
        logging.getLogger("uichecker.test").info("Server ready")
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = log_file.read_text()
        assert content.startswith("earlier\n")
        assert "Server ready" in content

    def test_reconfigure_replaces_handlers(self, tmp_path):
        """Repeated calls do not stack handlers."""
        configure_logging(tmp_path / "a.log")
        configure_logging(tmp_path / "b.log", verbose=True)

        ours = [h for h in logging.getLogger().handlers if getattr(h, "_uichecker", False)]
        assert len(ours) == 2
        assert logging.getLogger().level == logging.DEBUG
