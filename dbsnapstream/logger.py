# -*- coding: utf-8 -*-

from vislog import VisLog


class DummyLogger:
    """
    Logger that swallows everything, used as the default ``logger`` argument.
    """

    def debug(self, msg: str, *args, **kwargs):
        pass

    def info(self, msg: str, *args, **kwargs):
        pass

    def warning(self, msg: str, *args, **kwargs):
        pass

    def error(self, msg: str, *args, **kwargs):
        pass

    def critical(self, msg: str, *args, **kwargs):
        pass


dummy_logger = DummyLogger()

logger = VisLog(name="dbsnapstream", log_format="%(message)s")
