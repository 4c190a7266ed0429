import importlib
import sys
import tempfile

import config
import db


class TempDatabaseMixin:
    """Point every module at a throwaway sqlite file for the test's duration."""

    def setUpDatabase(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db_path = f"{self.tmp.name}/test.db"
        self._old_config_db_path = config.DB_PATH
        self._old_db_db_path = db.DB_PATH
        self._old_timezone = config.APP_TIMEZONE
        config.DB_PATH = self.db_path
        db.DB_PATH = self.db_path
        config.APP_TIMEZONE = "UTC"
        db.init_db()

    def tearDownDatabase(self):
        config.DB_PATH = self._old_config_db_path
        db.DB_PATH = self._old_db_db_path
        config.APP_TIMEZONE = self._old_timezone
        self.tmp.cleanup()

    def fresh_app(self):
        sys.modules.pop("main", None)
        return importlib.import_module("main").app

    def forget_app(self):
        sys.modules.pop("main", None)
