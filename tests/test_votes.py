import pytest

from civicseva.services.votes import (
    count_votes, is_community_verified, remove_vote, upvote, vote_counts, vote_summary,
)
from civicseva.utils.errors import NotFoundError


def test_upvoting_twice_counts_once(db, make_report):
    report = make_report()
    assert upvote(db, report.id, "citizen-1", "asha@example.com") is True
    assert upvote(db, report.id, "citizen-1", "asha@example.com") is False
    assert count_votes(db, report.id) == 1


def test_removing_a_missing_vote_is_a_no_op(db, make_report):
    report = make_report()
    upvote(db, report.id, "citizen-1")
    assert remove_vote(db, report.id, "citizen-2") is False
    assert count_votes(db, report.id) == 1


def test_community_verified_badge_follows_count(db, make_report):
    report = make_report()
    upvote(db, report.id, "u1")
    upvote(db, report.id, "u2")
    summary = vote_summary(db, report.id)
    assert summary["votes"] == 2
    assert summary["community_verified"] is False

    upvote(db, report.id, "u3")
    assert vote_summary(db, report.id)["community_verified"] is True

    remove_vote(db, report.id, "u1")
    summary = vote_summary(db, report.id)
    assert summary["votes"] == 2
    assert summary["community_verified"] is False


def test_threshold():
    assert not is_community_verified(2)
    assert is_community_verified(3)


def test_summary_knows_the_callers_vote(db, make_report):
    report = make_report()
    upvote(db, report.id, "u1")
    assert vote_summary(db, report.id, "u1")["has_voted"] is True
    assert vote_summary(db, report.id, "u2")["has_voted"] is False
    assert vote_summary(db, report.id)["has_voted"] is False


def test_votes_are_per_report(db, make_report):
    first = make_report(title="Pothole on 5th")
    second = make_report(title="Pothole on 6th")
    upvote(db, first.id, "u1")
    upvote(db, second.id, "u1")
    upvote(db, second.id, "u2")
    assert vote_counts(db, [first.id, second.id]) == {str(first.id): 1, str(second.id): 2}
    assert vote_counts(db, []) == {}


def test_vote_events_are_published(db, make_report, feed):
    report = make_report()
    seen = []
    with feed.subscribe(seen.append, table="report_votes"):
        upvote(db, report.id, "u1", feed=feed)
        upvote(db, report.id, "u1", feed=feed)
        remove_vote(db, report.id, "u1", feed=feed)
    assert [e.event_type for e in seen] == ["insert", "delete"]


def test_voting_on_missing_report(db):
    with pytest.raises(NotFoundError):
        upvote(db, "00000000-0000-0000-0000-000000000000", "u1")


def test_string_report_ids_are_accepted(db, make_report):
    report = make_report()
    upvote(db, str(report.id), "u1")
    assert count_votes(db, str(report.id)) == 1
    assert vote_counts(db, [str(report.id)]) == {str(report.id): 1}
    assert vote_summary(db, str(report.id), "u1")["has_voted"] is True
