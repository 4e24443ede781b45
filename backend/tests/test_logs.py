import logging
from datetime import datetime, timezone

from blogapi.logs import DailyFileHandler


def make_record(message):
    return logging.LogRecord("blogapi.access", logging.INFO, __file__, 1, message, None, None)


def test_daily_handler_switches_file_with_date(tmp_path):
    now = [datetime(2024, 5, 17, 23, 59, tzinfo=timezone.utc)]
    handler = DailyFileHandler(str(tmp_path / "logs"), "access", clock=lambda: now[0])
    handler.setFormatter(logging.Formatter("%(message)s"))

    handler.emit(make_record("GET /api/posts"))
    now[0] = datetime(2024, 5, 18, 0, 1, tzinfo=timezone.utc)
    handler.emit(make_record("GET /health"))
    handler.close()

    first = tmp_path / "logs" / "access-2024-05-17.log"
    second = tmp_path / "logs" / "access-2024-05-18.log"
    assert first.read_text(encoding="utf-8") == "GET /api/posts\n"
    assert second.read_text(encoding="utf-8") == "GET /health\n"


def test_daily_handler_is_lazy(tmp_path):
    handler = DailyFileHandler(str(tmp_path), "app")
    assert list(tmp_path.iterdir()) == []
    handler.close()
