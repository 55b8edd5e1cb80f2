"""Tests for the command line interface."""

import json
import shutil
import tempfile
from pathlib import Path

from click.testing import CliRunner

from htmlcatalog.cli.main import cli


def write_config(config_file: Path, data_dir: Path, backend: str = "json"):
    suffix = "db" if backend == "sqlite" else "json"
    config_file.write_text(
        "[storage]\n"
        f"backend = {backend}\n"
        f"path = {data_dir / ('catalog.' + suffix)}\n"
        f"blob_dir = {data_dir / 'blobs'}\n"
        "[logging]\n"
        "level = WARNING\n"
        "file_enabled = true\n"
        f"file_path = {data_dir / 'logs' / 'app.log'}\n"
        "console_enabled = false\n"
        "audit_enabled = false\n",
        encoding="utf-8",
    )


class TestCli:

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.config_file = self.temp_dir / "config.ini"
        write_config(self.config_file, self.temp_dir / "data")
        self.runner = CliRunner()

    def teardown_method(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def invoke(self, *args, config_file=None):
        return self.runner.invoke(cli, ["--config", str(config_file or self.config_file), *args])

    def ok(self, *args, **kwargs):
        result = self.invoke(*args, **kwargs)
        assert result.exit_code == 0, result.output
        return result

    def json_output(self, *args, **kwargs):
        return json.loads(self.ok(*args, **kwargs).output)

    def add_id(self, *args):
        """Run an ``add`` command and return the id it prints last."""
        return self.ok(*args).output.strip().splitlines()[-1]

    def write_page(self, name, body="<html><body>page</body></html>"):
        path = self.temp_dir / name
        path.write_text(body, encoding="utf-8")
        return path

    def test_help(self):
        result = self.ok("--help")
        assert "files" in result.output
        assert "tags" in result.output

    def test_tag_lifecycle(self):
        tag_id = self.add_id("tags", "add", "UI", "--color", "red")

        tags = self.json_output("tags", "list", "--format", "json")
        assert tags == [{"id": tag_id, "name": "UI", "description": "", "color": "red", "usage_count": 0}]

        self.ok("tags", "rename", "UI", "UserInterface")
        self.ok("tags", "update", tag_id, "--description", "Widgets")
        tags = self.json_output("tags", "list", "--format", "json")
        assert (tags[0]["name"], tags[0]["description"]) == ("UserInterface", "Widgets")

        self.ok("tags", "delete", "UserInterface")
        assert self.json_output("tags", "list", "--format", "json") == []

    def test_duplicate_tag(self):
        self.ok("tags", "add", "UI")
        result = self.invoke("tags", "add", "UI")

        assert result.exit_code == 1
        assert "Duplicate Name" in result.output

    def test_file_lifecycle(self):
        self.ok("tags", "add", "UI")
        self.ok("categories", "add", "Pages")
        self.ok("models", "add", "gpt", "--version", "4o")
        page = self.write_page("login.html")

        file_id = self.add_id("files", "add", str(page), "--tag", "UI", "--category", "Pages",
                              "--model", "gpt", "--title", "Login button")

        rows = self.json_output("files", "list", "--format", "json")
        assert [(row["id"], row["title"], row["category"], row["tags"], row["model"]) for row in rows] == [
            (file_id, "Login button", "Pages", ["UI"], "gpt")
        ]

        assert [row["id"] for row in self.json_output("files", "search", "log*", "--format", "json")] == [file_id]
        assert self.json_output("files", "search", "logout", "--format", "json") == []
        assert [row["id"] for row in self.json_output("files", "list", "--tag", "UI", "--format", "json")] == [file_id]

        shown = self.json_output("files", "show", file_id, "--format", "json")
        assert shown["access_count"] == 1
        shown = self.json_output("files", "show", file_id, "--no-count", "--format", "json")
        assert shown["access_count"] == 1

        self.ok("files", "update", file_id, "--title", "Sign in", "--clear-tags")
        shown = self.json_output("files", "show", file_id, "--no-count", "--format", "json")
        assert (shown["title"], shown["tags"]) == ("Sign in", [])

        self.ok("files", "delete", file_id)
        assert self.json_output("files", "list", "--format", "json") == []

    def test_file_without_category_goes_to_default(self):
        file_id = self.add_id("files", "add", str(self.write_page("page.htm")))

        rows = self.json_output("files", "list", "--format", "json")
        assert [(row["id"], row["title"], row["category"]) for row in rows] == [(file_id, "page.htm", "Uncategorized")]

    def test_add_rejects_non_html(self):
        result = self.invoke("files", "add", str(self.write_page("notes.txt")))

        assert result.exit_code == 1
        assert "Invalid Input" in result.output

    def test_add_with_unknown_tag(self):
        result = self.invoke("files", "add", str(self.write_page("page.html")), "--tag", "missing")

        assert result.exit_code == 1
        assert "Not Found" in result.output

    def test_delete_tag_in_use(self):
        self.ok("tags", "add", "UI")
        self.ok("files", "add", str(self.write_page("page.html")), "--tag", "UI")

        result = self.invoke("tags", "delete", "UI")

        assert result.exit_code == 1
        assert "In Use" in result.output
        assert self.json_output("tags", "list", "--format", "json")[0]["usage_count"] == 1

    def test_csv_output(self):
        self.ok("tags", "add", "UI")
        self.ok("files", "add", str(self.write_page("page.html")), "--tag", "UI")

        lines = self.ok("files", "list", "--format", "csv").output.strip().splitlines()
        assert lines[0].startswith("id,title,original_name,category,tags")
        assert ",UI," in lines[1]

    def test_scan_and_stats(self):
        pages = self.temp_dir / "pages"
        (pages / "sub").mkdir(parents=True)
        (pages / "a.html").write_text("<html>A</html>")
        (pages / "sub" / "b.html").write_text("<html>B</html>")
        (pages / "readme.md").write_text("# readme")

        result = self.ok("scan", str(pages))
        assert "Files added: 2" in result.output

        stats = self.json_output("stats", "--format", "json")
        assert stats["total_files"] == 2
        assert list(stats["category_usage"].values()) == [2]

        table = self.ok("stats").output
        assert "Files: 2" in table

    def test_scan_missing_directory(self):
        result = self.invoke("scan", str(self.temp_dir / "missing"))

        assert result.exit_code == 1
        assert "Scan Error" in result.output

    def test_export_and_import(self):
        self.ok("tags", "add", "UI")
        self.ok("files", "add", str(self.write_page("page.html")), "--tag", "UI")
        export_file = self.temp_dir / "export.json"
        self.ok("export", str(export_file))

        other_config = self.temp_dir / "other.ini"
        write_config(other_config, self.temp_dir / "other", backend="sqlite")
        self.ok("tags", "add", "Replaced", config_file=other_config)

        self.ok("import", str(export_file), "--yes", config_file=other_config)

        tags = self.json_output("tags", "list", "--format", "json", config_file=other_config)
        assert [(tag["name"], tag["usage_count"]) for tag in tags] == [("UI", 1)]
        self.ok("check", config_file=other_config)

    def test_import_needs_confirmation(self):
        export_file = self.temp_dir / "export.json"
        self.ok("export", str(export_file))

        result = self.runner.invoke(cli, ["--config", str(self.config_file), "import", str(export_file)], input="n\n")
        assert result.exit_code == 1

    def test_import_rejects_other_files(self):
        bad = self.temp_dir / "bad.json"
        bad.write_text("[1, 2, 3]")

        result = self.invoke("import", str(bad), "--yes")

        assert result.exit_code == 1
        assert "Storage Error" in result.output

    def test_unreadable_catalog_is_not_replaced(self):
        catalog = self.temp_dir / "data" / "catalog.json"
        catalog.mkdir(parents=True)

        result = self.invoke("tags", "add", "UI")

        assert result.exit_code == 1
        assert "Storage Error" in result.output
        assert catalog.is_dir()

    def test_check(self):
        result = self.ok("check")
        assert "consistent" in result.output

    def test_config_set_and_show(self):
        self.ok("config", "set", "web.port", "8081")

        assert "port: 8081" in self.ok("config", "show").output

        result = self.invoke("config", "set", "web.nope", "1")
        assert result.exit_code == 1
        assert "Configuration Error" in result.output
