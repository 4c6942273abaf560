import json
import os
import unittest
from unittest import mock

# Ensure local imports work when running this file directly.
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
if THIS_DIR not in os.sys.path:
    os.sys.path.insert(0, THIS_DIR)

import main


class TestMain(unittest.TestCase):
    def run_main(self, load_error):
        with mock.patch.object(main, "load_config", side_effect=load_error), \
                mock.patch.object(main, "setup_logging"), \
                mock.patch.object(main, "log_error") as log_error, \
                mock.patch.object(main.asyncio, "run") as run:
            code = main.main()
        run.assert_not_called()
        return code, log_error

    def test_config_that_is_not_an_object_exits_cleanly(self):
        code, log_error = self.run_main(ValueError("Config file config.json must contain a JSON object"))
        self.assertEqual(code, 1)
        self.assertIn("must contain a JSON object", log_error.call_args[0][0])

    def test_invalid_json_exits_cleanly(self):
        code, log_error = self.run_main(json.JSONDecodeError("Expecting value", "{", 1))
        self.assertEqual(code, 1)
        self.assertIn("invalid JSON", log_error.call_args[0][0])

    def test_missing_credentials_exit(self):
        with mock.patch.object(main, "load_config", return_value={"service_url": "http://x"}), \
                mock.patch.object(main, "setup_logging"), \
                mock.patch.object(main, "log_error") as log_error, \
                mock.patch.object(main.asyncio, "run") as run:
            self.assertEqual(main.main(), 1)
        run.assert_not_called()
        self.assertIn("spotify_client_id", log_error.call_args[0][0])


if __name__ == "__main__":
    unittest.main(verbosity=2)
