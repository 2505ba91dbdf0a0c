"""
Unit Tests for the Command Line Entry Point

Test Coverage:
    - Subcommand parsing and the monitor default
    - display prints the node record as JSON
    - display refuses an invalid configuration
    - Exit codes for resolution failures and interrupts
"""

import io
import json
import logging
import os
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch

from .__main__ import main, parse_args
from .errors import NetworkResolutionError
from .test_daemon import make_node


class TestParseArgs(unittest.TestCase):

    def test_default_command(self):
        self.assertEqual(parse_args([]).command, "monitor")

    def test_display_with_backends(self):
        args = parse_args(["display", "--with-backends"])
        self.assertEqual(args.command, "display")
        self.assertTrue(args.with_backends)


@patch('runtimecfg.__main__.setup_logger', return_value=logging.getLogger('test_runtimecfg_main'))
class TestMain(unittest.TestCase):

    @patch('runtimecfg.__main__.validate_configuration', return_value=[])
    @patch('runtimecfg.__main__.build_node', return_value=make_node())
    def test_display(self, mock_build, mock_validate, mock_setup):
        out = io.StringIO()
        with redirect_stdout(out):
            self.assertEqual(main(["display"]), 0)
        self.assertEqual(json.loads(out.getvalue())["vrrp_interface"], "ens3")
        self.assertIsNone(mock_build.call_args.kwargs["membership_source"])

    @patch('runtimecfg.__main__.validate_configuration', return_value=[])
    @patch('runtimecfg.__main__.build_node', side_effect=NetworkResolutionError("no interface"))
    def test_resolution_error_exit_code(self, mock_build, mock_validate, mock_setup):
        self.assertEqual(main(["display"]), 1)

    @patch.dict(os.environ, {"API_VIP": "10.0.0.300"})
    @patch('runtimecfg.__main__.build_node')
    def test_display_rejects_malformed_vip(self, mock_build, mock_setup):
        out = io.StringIO()
        with redirect_stdout(out):
            self.assertEqual(main(["display"]), 1)
        mock_build.assert_not_called()
        self.assertEqual(out.getvalue(), "")

    @patch('runtimecfg.__main__.startup', side_effect=KeyboardInterrupt)
    def test_interrupt_exit_code(self, mock_startup, mock_setup):
        self.assertEqual(main(["monitor"]), 130)

    @patch('runtimecfg.__main__.startup', side_effect=SystemExit(1))
    def test_validation_failure_exit_code(self, mock_startup, mock_setup):
        self.assertEqual(main([]), 1)


if __name__ == '__main__':
    unittest.main()
