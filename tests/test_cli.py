from pathlib import Path

import pytest

from radio_deck import cli


def test_parser_requires_subcommand():
    parser = cli.build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args([])


def test_parser_reads_discover_timeout(tmp_path):
    parser = cli.build_parser()
    args = parser.parse_args(["-c", str(tmp_path / "deck.cfg"), "discover", "--timeout", "2.5"])

    assert args.command == "discover"
    assert args.timeout == 2.5
    assert args.config == tmp_path / "deck.cfg"


def test_show_config_prints_resolved_sections(tmp_path, capsys):
    config_path: Path = tmp_path / "deck.cfg"
    config_path.write_text("[radio]\naddress = 192.168.1.40:4993\n", encoding="utf-8")

    assert cli.main(["-c", str(config_path), "show-config"]) == 0

    output = capsys.readouterr().out
    assert "[radio]" in output
    assert "address = 192.168.1.40" in output
    assert "port = 4993" in output
    assert "[telemetry]" in output
