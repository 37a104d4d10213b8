"""
Unit tests for the logbook command line.

Tests cover:
- Argument parsing
- Confirmation required for destructive commands
- One-shot commands against the in-memory backend
"""

import json

import pytest

from logbook.logbook_server.config import SchedulerConfig, ServerConfig
from logbook.logbook_server.main import Server, build_parser, run_command
from logbook.logbook_server.records import Collection


@pytest.fixture
def server():
    return Server(ServerConfig(scheduler=SchedulerConfig(enabled=False)))


class TestParser:
    """Tests for build_parser()."""

    def test_restore_arguments(self):
        args = build_parser().parse_args(["restore", "snap-1", "--yes"])

        assert args.command == "restore"
        assert args.snapshot_id == "snap-1"
        assert args.yes is True

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_alerts_options(self):
        args = build_parser().parse_args(["alerts", "--urgency", "--limit", "6", "--date", "2026-03-10"])

        assert args.urgency is True
        assert args.limit == 6
        assert args.date == "2026-03-10"


class TestRunCommand:
    """Tests for run_command()."""

    @pytest.mark.asyncio
    async def test_restore_requires_confirmation(self, server, capsys):
        args = build_parser().parse_args(["restore", "snap-1"])

        code = await run_command(server, args)

        assert code == 2
        assert "--yes" in capsys.readouterr().err
        assert server.service is None

    @pytest.mark.asyncio
    async def test_reset_requires_confirmation(self, server):
        args = build_parser().parse_args(["reset"])

        assert await run_command(server, args) == 2

    @pytest.mark.asyncio
    async def test_backup_then_list(self, server, capsys):
        await server.setup()
        await server.entity_store.bulk_insert(
            Collection.NOTES, [{"data": "2026-03-10", "texto": "turno da tarde"}]
        )

        assert await run_command(server, build_parser().parse_args(["backup"])) == 0
        capsys.readouterr()

        assert await run_command(server, build_parser().parse_args(["list"])) == 0
        listed = json.loads(capsys.readouterr().out)

        assert len(listed) == 1
        assert listed[0]["counts"]["comentarios"] == 1

    @pytest.mark.asyncio
    async def test_restore_missing_snapshot_fails(self, server, capsys):
        code = await run_command(server, build_parser().parse_args(["restore", "nope", "--yes"]))

        assert code == 1
        assert "not found" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_alerts_json(self, server, capsys):
        await server.setup()
        await server.entity_store.bulk_insert(
            Collection.INVOICES, [{"data": "2026-03-01", "numero": "NF-7", "status": "Pré Nota"}]
        )

        code = await run_command(
            server, build_parser().parse_args(["alerts", "--date", "2026-03-10"])
        )

        assert code == 0
        result = json.loads(capsys.readouterr().out)
        assert result["items"][0]["number"] == "NF-7"
        assert result["items"][0]["age_days"] == 9

    @pytest.mark.asyncio
    async def test_alerts_bad_date(self, server):
        code = await run_command(server, build_parser().parse_args(["alerts", "--date", "10/03/2026"]))

        assert code == 2

    @pytest.mark.asyncio
    async def test_alerts_negative_limit(self, server):
        code = await run_command(server, build_parser().parse_args(["alerts", "--limit", "-1"]))

        assert code == 2
