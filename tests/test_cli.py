"""Tests for the database management CLI."""
import pytest

from schemakeeper.cli import build_parser, main
from schemakeeper.utils.logging import environment_var, operation_var

MIGRATIONS = {
    "1_create_users.sql": "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL);",
    "2_add_email.sql": "ALTER TABLE users ADD COLUMN email TEXT;",
}


@pytest.fixture
def project(monkeypatch, tmp_path):
    """A project directory with migrations, seeds and a SQLite test database."""
    migrations = tmp_path / "db" / "migrations"
    migrations.mkdir(parents=True)
    for name, sql in MIGRATIONS.items():
        (migrations / name).write_text(sql)
    (tmp_path / "db" / "seeds.sql").write_text("INSERT INTO users (name, email) VALUES ('ada', 'ada@example.com');")

    for name in ("DATABASE_URL", "ENVIRONMENT", "LOG_LEVEL", "ALLOW_DESTRUCTIVE", "MIGRATIONS_DIR", "SEED_FILE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env.test").write_text(f"DATABASE_URL=sqlite+aiosqlite:///{tmp_path / 'test.db'}\n")
    return tmp_path


class TestParser:
    """Test argument parsing."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ENVIRONMENT", raising=False)

        args = build_parser().parse_args(["migrate"])

        assert args.env == "development"
        assert args.command == "migrate"
        assert not args.yes

    def test_reset_options(self):
        args = build_parser().parse_args(["-e", "test", "-y", "reset", "--if-exists"])

        assert args.env == "test"
        assert args.yes
        assert args.if_exists


class TestMain:
    """Test the CLI end to end against SQLite."""

    def test_migrate(self, project, capsys):
        assert main(["--env", "test", "migrate"]) == 0

        out = capsys.readouterr().out
        assert "Applied migration 1." in out
        assert "Applied migration 2." in out
        assert "2 migrations applied." in out

    def test_migrate_twice(self, project, capsys):
        assert main(["--env", "test", "migrate"]) == 0
        capsys.readouterr()

        assert main(["--env", "test", "migrate"]) == 0
        assert "0 migrations applied." in capsys.readouterr().out

    def test_seed_after_migrate(self, project, capsys):
        assert main(["--env", "test", "migrate"]) == 0
        assert main(["--env", "test", "seed"]) == 0

        assert "Seeded database successfully." in capsys.readouterr().out

    def test_seed_without_schema_fails(self, project, capsys):
        assert main(["--env", "test", "seed"]) == 1

        assert "Could not seed database!" in capsys.readouterr().out

    def test_status(self, project, capsys):
        assert main(["--env", "test", "status"]) == 0

        out = capsys.readouterr().out
        assert "Pending Migrations: 2" in out
        assert "1: create users" in out

    def test_failed_migration(self, project, capsys):
        (project / "db" / "migrations" / "3_broken.sql").write_text("INSERT INTO nowhere VALUES (1);")

        assert main(["--env", "test", "migrate"]) == 1

        out = capsys.readouterr().out
        assert "Could not migrate database!" in out
        assert "migration 3, 2 applied before it" in out

    def test_destructive_command_declined(self, project, monkeypatch, capsys):
        monkeypatch.setattr("builtins.input", lambda prompt: "n")

        assert main(["--env", "test", "drop"]) == 1

        assert "Operation cancelled" in capsys.readouterr().out

    def test_yes_is_not_enough_in_production(self, project, monkeypatch, capsys):
        (project / ".env.production").write_text(f"DATABASE_URL=sqlite+aiosqlite:///{project / 'prod.db'}\n")
        prompts = []
        monkeypatch.setattr("builtins.input", lambda prompt: prompts.append(prompt) or "no")

        assert main(["--env", "production", "--yes", "reset"]) == 1

        assert len(prompts) == 1
        assert "Operation cancelled" in capsys.readouterr().out

    def test_no_command(self, capsys):
        assert main([]) == 1

        assert "usage" in capsys.readouterr().out

    def test_invalid_config(self, project, capsys):
        assert main(["--env", "development", "status"]) == 1

        assert "Could not load config!" in capsys.readouterr().out

    def test_unknown_environment(self, project, capsys):
        assert main(["--env", "staging", "status"]) == 1

        assert "Unknown environment" in capsys.readouterr().out

    def test_closed_stdin_declines(self, project, monkeypatch, capsys):
        def closed_stdin(prompt):
            raise EOFError

        monkeypatch.setattr("builtins.input", closed_stdin)

        assert main(["--env", "test", "reset"]) == 1

        assert "Operation cancelled" in capsys.readouterr().out

    def test_no_color(self, project, monkeypatch):
        calls = []
        monkeypatch.setattr("schemakeeper.cli.setup_logging", lambda level, colors=True: calls.append(colors))

        assert main(["--env", "test", "--no-color", "status"]) == 0
        assert main(["--env", "test", "status"]) == 0

        assert calls == [False, True]

    def test_production_warning(self, project, capsys):
        (project / ".env.production").write_text(f"DATABASE_URL=sqlite+aiosqlite:///{project / 'prod.db'}\n")

        assert main(["--env", "production", "status"]) == 0

        assert "Running against the production database" in capsys.readouterr().out

    def test_log_context_cleared_after_command(self, project):
        assert main(["--env", "test", "migrate"]) == 0

        assert operation_var.get() is None
        assert environment_var.get() is None
