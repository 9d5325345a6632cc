from statcard.crawlers.github.contracts import AggregateStatistics, LocStrategy, TrafficSummary
from statcard.services.card_renderer import build_rows, render_statistics_card


def _stats(**overrides) -> AggregateStatistics:
    values = dict(
        login="alice",
        stars=1234,
        forks=56,
        contributions_all_time=7890,
        loc_changed=120000,
        loc_strategy=LocStrategy.CONTRIBUTOR_STATS,
        loc_items_counted=310,
        commits_counted=310,
        repos_scanned=25,
        repos_matched=18,
        repos_pending=4,
        repos_failed=1,
        repos_owned=20,
        repos_contributed_to=9,
    )
    values.update(overrides)
    return AggregateStatistics(**values)


def test_rows_explain_partial_contributor_stats() -> None:
    rows = {row.label: row for row in build_rows(_stats())}

    loc = rows["Lines of code changed"]
    assert loc.value == "120,000"
    assert loc.notes == (
        "from 310 commits across 18/25 repos",
        "4 repos pending stats (GitHub computing)",
        "1 repos failed to read",
    )
    assert rows["Repositories with contributions"].value == "18"
    assert "Views (14 days)" not in rows


def test_unavailable_figures_render_as_placeholder() -> None:
    rows = {row.label: row for row in build_rows(_stats(contributions_all_time=None, loc_changed=None))}

    assert rows["All-time contributions"].value == "—"
    assert rows["Lines of code changed"].notes == ("unavailable right now",)
    assert rows["Repositories with contributions"].value == "9"


def test_pull_request_strategy_note_and_traffic_row() -> None:
    stats = _stats(
        loc_strategy=LocStrategy.PULL_REQUESTS,
        loc_items_counted=42,
        repos_scanned=0,
        repos_matched=0,
        repos_pending=0,
        repos_failed=0,
        traffic=TrafficSummary(total_views=1500, attempted=10, succeeded=7),
    )

    rows = {row.label: row for row in build_rows(stats)}

    assert rows["Lines of code changed"].notes == ("from 42 merged PRs",)
    assert rows["Views (14 days)"].value == "1,500"
    assert rows["Views (14 days)"].notes == ("7/10 repos reporting",)


def test_svg_escapes_login_and_grows_with_notes() -> None:
    plain = render_statistics_card(_stats(repos_pending=0, repos_failed=0))
    noisy = render_statistics_card(_stats(login="<script>"))

    assert plain.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert "alice&#39;s GitHub Statistics" in plain
    assert "<script>" not in noisy
    assert "&lt;script&gt;&#39;s GitHub Statistics" in noisy
    assert 'height="' in plain
    plain_height = int(plain.split('height="', 1)[1].split('"', 1)[0])
    noisy_height = int(noisy.split('height="', 1)[1].split('"', 1)[0])
    assert noisy_height > plain_height


def test_custom_title_and_width() -> None:
    svg = render_statistics_card(_stats(), width=600, title="Team & Co")

    assert 'width="600"' in svg
    assert "Team &amp; Co" in svg
