import json

import pytest

from models import MonthlyTheme, Newsletter, SECTION_KEYS
from publisher import NewsletterPublisher, markdown_to_html


@pytest.fixture
def publisher(make_config):
    return NewsletterPublisher(make_config())


def test_publish_writes_all_files(publisher, make_newsletter):
    result = publisher.publish(make_newsletter())

    out = publisher.output_dir
    assert result.date_key == "2026-03"
    assert (out / "2026-03.json").exists()
    assert (out / "2026-03.html").exists()
    assert json.loads((out / "latest.json").read_text()) == json.loads((out / "2026-03.json").read_text())

    data = json.loads((out / "2026-03.json").read_text())
    assert list(data["sections"]) == list(SECTION_KEYS)
    assert data["metadata"]["dateString"] == "March 2026"
    assert data["metadata"]["theme"] == {"theme": "Kingdom Advancement", "focus": "Pressing forward"}

    html = (out / "2026-03.html").read_text()
    assert "<strong>pastoralMessage</strong> body" in html
    assert "Test Ministry" in html
    assert "https://give.example/tm" in html

    archive = json.loads((out / "archive.json").read_text())
    assert archive == [{
        "dateKey": "2026-03",
        "title": "The Kingdom Report",
        "dateString": "March 2026",
        "theme": "Kingdom Advancement",
        "generatedAt": "2026-03-01T12:00:00.000Z",
        "jsonFile": "2026-03.json",
        "htmlFile": "2026-03.html",
    }]
    assert result.archive_entries == 1


def test_archive_keeps_one_entry_per_month_newest_first(publisher, make_newsletter):
    publisher.output_dir.mkdir(parents=True)
    publisher.archive_path.write_text(json.dumps([
        {"dateKey": "2025-06", "generatedAt": "old-1"},
        {"dateKey": "2025-05", "generatedAt": "may"},
        {"dateKey": "2025-06", "generatedAt": "old-2"},
    ]))

    publisher.publish(make_newsletter(month=6, year=2025, generated_at="new"))

    archive = json.loads(publisher.archive_path.read_text())
    assert [entry["dateKey"] for entry in archive] == ["2025-06", "2025-05"]
    assert archive[0]["generatedAt"] == "new"


def test_republishing_same_month_is_idempotent_on_archive(publisher, make_newsletter):
    publisher.publish(make_newsletter())
    publisher.publish(make_newsletter(generated_at="2026-03-02T00:00:00.000Z"))

    archive = json.loads(publisher.archive_path.read_text())
    assert len(archive) == 1
    assert archive[0]["generatedAt"] == "2026-03-02T00:00:00.000Z"


@pytest.mark.parametrize("existing", ["not json {", '{"dateKey": "2025-01"}'])
def test_corrupt_archive_starts_fresh(publisher, make_newsletter, existing):
    publisher.output_dir.mkdir(parents=True)
    publisher.archive_path.write_text(existing)

    result = publisher.publish(make_newsletter())

    archive = json.loads(publisher.archive_path.read_text())
    assert [entry["dateKey"] for entry in archive] == ["2026-03"]
    assert result.archive_entries == 1


def test_load_latest_round_trip(publisher, make_newsletter):
    newsletter = make_newsletter()
    publisher.publish(newsletter)

    loaded = publisher.load_latest()

    assert loaded == newsletter
    assert loaded.subject == "The Kingdom Report - March 2026"


def test_load_latest_missing_or_invalid(publisher):
    assert publisher.load_latest() is None

    publisher.output_dir.mkdir(parents=True)
    publisher.latest_path.write_text('{"sections": {}}')
    assert publisher.load_latest() is None


def test_legacy_string_theme_is_accepted(make_newsletter):
    data = make_newsletter().to_dict()
    data["metadata"]["theme"] = "Kingdom Love"

    newsletter = Newsletter.from_dict(data)

    assert newsletter.metadata.theme == MonthlyTheme("Kingdom Love", "")


def test_markdown_to_html():
    html = markdown_to_html("### Headline\n\n**Kingdom Perspective:** the King reigns")
    assert "<h3>Headline</h3>" in html
    assert "<strong>Kingdom Perspective:</strong>" in html
    assert markdown_to_html(None) == ""
