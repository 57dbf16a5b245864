"""Tests for public intake, duplicate detection and moderation."""

import pytest

from lazyuncle import clock


def _data(**overrides):
    data = {"name": "Avery", "date": "2015-03-02"}
    data.update(overrides)
    return data


async def _status(db, submission_id):
    cursor = await db.execute(
        "SELECT status FROM birthday_submissions WHERE id = ?", (submission_id,)
    )
    row = await cursor.fetchone()
    return row[0] if row else None


# ── Similarity ───────────────────────────────────────────────────────────────


class TestSimilarity:
    def test_levenshtein(self):
        from lazyuncle.services.submission_service import levenshtein

        assert levenshtein("kitten", "sitting") == 3
        assert levenshtein("", "abc") == 3
        assert levenshtein("same", "same") == 0

    def test_name_similarity_is_case_insensitive(self):
        from lazyuncle.services.submission_service import name_similarity

        assert name_similarity("Avery", "AVERY") == 1.0
        assert name_similarity("Jon", "John") == pytest.approx(0.75)
        assert name_similarity("", "x") == 0.0

    def test_date_score(self):
        from lazyuncle.services.submission_service import date_score

        assert date_score(2015, 3, 2, 2015, 3, 2) == 0.4
        assert date_score(None, 3, 2, 2015, 3, 2) == 0.35
        assert date_score(2014, 3, 2, 2015, 3, 2) == 0.2
        assert date_score(2015, 3, 2, 2015, 3, 3) == 0.0

    def test_calculate_similarity(self):
        from lazyuncle.services.submission_service import calculate_similarity

        a = {"name": "Avery", "year": 2015, "month": 3, "day": 2}
        assert calculate_similarity(a, dict(a)) == pytest.approx(1.0)
        assert calculate_similarity(a, {**a, "year": None}) == pytest.approx(0.95)
        assert calculate_similarity(a, {**a, "name": "Zed", "day": 9}) < 0.3

    def test_status_transitions(self):
        from lazyuncle.services.submission_service import SubmissionStatus as S

        assert S.PENDING.can_transition_to(S.IMPORTED)
        assert S.PENDING.can_transition_to(S.REJECTED)
        assert not S.IMPORTED.can_transition_to(S.REJECTED)
        assert not S.PENDING.can_transition_to(S.PENDING)
        assert S.REJECTED.is_terminal


@pytest.mark.asyncio
async def test_detect_duplicates(owner):
    from lazyuncle.services.birthday_service import create_birthday
    from lazyuncle.services.submission_service import detect_duplicates

    exact = await create_birthday(owner["id"], "Avery", 3, 2, year=2015)
    no_year = await create_birthday(owner["id"], "Avery", 3, 2)
    await create_birthday(owner["id"], "Morgan", 7, 14, year=1990)

    matches = await detect_duplicates(owner["id"], {"name": "avery", "date": "2015-03-02"})
    assert [m["id"] for m in matches] == [exact["id"], no_year["id"]]
    assert matches[0]["similarity"] == 1.0
    assert matches[1]["date"] == "--03-02"


@pytest.mark.asyncio
async def test_detect_duplicates_accepts_yearless_date(owner):
    from lazyuncle.services.birthday_service import create_birthday
    from lazyuncle.services.submission_service import detect_duplicates

    dated = await create_birthday(owner["id"], "Avery", 3, 2, year=2015)
    no_year = await create_birthday(owner["id"], "Avery", 3, 2)

    matches = await detect_duplicates(owner["id"], {"name": "Avery", "date": "--03-02"})
    assert {m["id"] for m in matches} == {dated["id"], no_year["id"]}
    assert all(m["similarity"] == 0.95 for m in matches)

    with pytest.raises(ValueError, match="expected YYYY-MM-DD or --MM-DD"):
        await detect_duplicates(owner["id"], {"name": "Avery", "date": "03/02"})


# ── Intake ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_process_submission_stores_and_notifies(db, owner, insert_link, sent_emails):
    from lazyuncle.services.submission_service import process_submission

    link = await insert_link(owner["id"], description="Family")
    result = await process_submission(
        link["token"],
        _data(
            name="  Avery ",
            submitter_name="Sam",
            submitter_email="Sam@Example.com",
            relationship="niece",
        ),
        submitter_ip="203.0.113.5",
    )
    assert result.success
    assert result.errors == []

    cursor = await db.execute(
        """SELECT name, year, month, day, submitter_email, submitter_ip, status
           FROM birthday_submissions WHERE id = ?""",
        (result.submission_id,),
    )
    assert await cursor.fetchone() == (
        "Avery", 2015, 3, 2, "sam@example.com", "203.0.113.5", "PENDING"
    )

    assert len(sent_emails) == 1
    email = sent_emails[0]
    assert email["to"] == "owner@example.com"
    assert email["subject"] == "New Birthday Submission Received"
    assert "from Sam" in email["text"]
    assert 'via your "Family" sharing link' in email["text"]
    assert "Avery (niece)" in email["text"]


@pytest.mark.asyncio
async def test_process_submission_invalid_link(owner, insert_link):
    from lazyuncle.services.submission_service import MSG_INVALID_LINK, process_submission

    inactive = await insert_link(owner["id"], is_active=False)
    for token in ("does-not-exist-token", inactive["token"]):
        result = await process_submission(token, _data())
        assert not result.success
        assert result.errors == [MSG_INVALID_LINK]


@pytest.mark.asyncio
async def test_process_submission_validation_errors(owner, insert_link):
    from lazyuncle.services.input_validator import ERR_DATE, ERR_NAME
    from lazyuncle.services.submission_service import process_submission

    link = await insert_link(owner["id"])
    result = await process_submission(link["token"], {"name": "123", "date": "2015-02-30"})
    assert not result.success
    assert result.errors == [ERR_NAME, ERR_DATE]


@pytest.mark.asyncio
async def test_process_submission_hourly_cap(owner, insert_link, insert_submission):
    from lazyuncle.services.submission_service import MSG_LINK_RATE_LIMITED, process_submission

    link = await insert_link(owner["id"])
    for i in range(10):
        await insert_submission(link["id"], name=f"Kid {i}")

    result = await process_submission(link["token"], _data())
    assert result.errors == [MSG_LINK_RATE_LIMITED]


@pytest.mark.asyncio
async def test_process_submission_survives_notification_failure(
    owner, insert_link, monkeypatch
):
    from lazyuncle.services import notification_service
    from lazyuncle.services.email_transport import EmailTransportError
    from lazyuncle.services.submission_service import process_submission

    async def _fail(*args):
        raise EmailTransportError("SMTP down")

    monkeypatch.setattr(notification_service, "send_email", _fail)
    link = await insert_link(owner["id"])
    result = await process_submission(link["token"], _data())
    assert result.success
    assert notification_service.pending_notification_count() == 1


# ── Moderation ───────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_import_submission(db, owner, insert_link, insert_submission):
    from lazyuncle.services.birthday_service import get_birthday
    from lazyuncle.services.submission_service import MSG_NOT_FOUND, import_submission

    link = await insert_link(owner["id"])
    sub_id = await insert_submission(link["id"], name="Avery", year=None)

    result = await import_submission(sub_id, owner["id"])
    assert result.success
    birthday = await get_birthday(result.birthday_id, owner["id"])
    assert birthday["name"] == "Avery"
    assert birthday["year"] is None
    assert birthday["import_source"] == "sharing"
    assert await _status(db, sub_id) == "IMPORTED"

    again = await import_submission(sub_id, owner["id"])
    assert not again.success
    assert again.errors == [MSG_NOT_FOUND]


@pytest.mark.asyncio
async def test_moderation_requires_ownership(db, owner, make_user, insert_link, insert_submission):
    from lazyuncle.services.submission_service import (
        MSG_NOT_FOUND,
        import_submission,
        reject_submission,
    )

    other = await make_user("other@example.com")
    link = await insert_link(owner["id"])
    sub_id = await insert_submission(link["id"])

    assert (await import_submission(sub_id, other["id"])).errors == [MSG_NOT_FOUND]
    assert (await reject_submission(sub_id, other["id"])).errors == [MSG_NOT_FOUND]
    assert await _status(db, sub_id) == "PENDING"


@pytest.mark.asyncio
async def test_reject_is_terminal(db, owner, insert_link, insert_submission):
    from lazyuncle.services.submission_service import import_submission, reject_submission

    link = await insert_link(owner["id"])
    sub_id = await insert_submission(link["id"])

    assert (await reject_submission(sub_id, owner["id"])).success
    assert await _status(db, sub_id) == "REJECTED"
    assert not (await reject_submission(sub_id, owner["id"])).success
    assert not (await import_submission(sub_id, owner["id"])).success


@pytest.mark.asyncio
async def test_concurrent_imports_create_one_birthday(db, owner, insert_link, insert_submission):
    import asyncio

    from lazyuncle.services.birthday_service import get_birthday, list_birthdays
    from lazyuncle.services.submission_service import MSG_NOT_FOUND, import_submission

    link = await insert_link(owner["id"])
    sub_id = await insert_submission(link["id"])

    results = await asyncio.gather(
        import_submission(sub_id, owner["id"]),
        import_submission(sub_id, owner["id"]),
    )

    winners = [r for r in results if r.success]
    losers = [r for r in results if not r.success]
    assert len(winners) == 1
    assert losers[0].errors == [MSG_NOT_FOUND]
    assert len(await list_birthdays(owner["id"])) == 1
    assert await get_birthday(winners[0].birthday_id, owner["id"]) is not None
    assert await _status(db, sub_id) == "IMPORTED"


@pytest.mark.asyncio
async def test_concurrent_import_and_reject_one_wins(db, owner, insert_link, insert_submission):
    import asyncio

    from lazyuncle.services.birthday_service import list_birthdays
    from lazyuncle.services.submission_service import import_submission, reject_submission

    link = await insert_link(owner["id"])
    sub_id = await insert_submission(link["id"])

    imported, rejected = await asyncio.gather(
        import_submission(sub_id, owner["id"]),
        reject_submission(sub_id, owner["id"]),
    )

    assert imported.success != rejected.success
    birthdays = await list_birthdays(owner["id"])
    if imported.success:
        assert [b["id"] for b in birthdays] == [imported.birthday_id]
        assert await _status(db, sub_id) == "IMPORTED"
    else:
        assert birthdays == []
        assert await _status(db, sub_id) == "REJECTED"


@pytest.mark.asyncio
async def test_import_failure_leaves_submission_pending(
    db, owner, insert_link, insert_submission, monkeypatch
):
    from lazyuncle.services import submission_service
    from lazyuncle.services.birthday_service import list_birthdays

    link = await insert_link(owner["id"])
    sub_id = await insert_submission(link["id"])

    async def _failing_create(**kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(submission_service, "create_birthday", _failing_create)
    result = await submission_service.import_submission(sub_id, owner["id"])

    assert not result.success
    assert result.errors == ["Failed to import submission. Please try again."]
    assert await list_birthdays(owner["id"]) == []
    assert await _status(db, sub_id) == "PENDING"


@pytest.mark.asyncio
async def test_bulk_import_partial_failure(db, owner, insert_link, insert_submission):
    from lazyuncle.services.birthday_service import list_birthdays
    from lazyuncle.services.submission_service import bulk_import_submissions, reject_submission

    link = await insert_link(owner["id"])
    first = await insert_submission(link["id"], name="Avery")
    rejected = await insert_submission(link["id"], name="Blair")
    third = await insert_submission(link["id"], name="Casey")
    await reject_submission(rejected, owner["id"])

    result = await bulk_import_submissions([first, rejected, third, 9999], owner["id"])
    assert not result.success
    assert result.processed_count == 2
    assert result.failed_count == 2
    assert result.failed_ids == [rejected, 9999]
    assert len(result.errors) == 2
    assert sorted(b["name"] for b in await list_birthdays(owner["id"])) == ["Avery", "Casey"]


@pytest.mark.asyncio
async def test_bulk_reject(db, owner, insert_link, insert_submission):
    from lazyuncle.services.submission_service import bulk_reject_submissions

    link = await insert_link(owner["id"])
    ids = [await insert_submission(link["id"], name=n) for n in ("A", "B")]

    result = await bulk_reject_submissions(ids, owner["id"])
    assert result.success
    assert result.processed_count == 2
    assert result.failed_ids == []
    assert [await _status(db, i) for i in ids] == ["REJECTED", "REJECTED"]


# ── Listings and duplicates ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_pending_pagination(owner, make_user, insert_link, insert_submission):
    from lazyuncle.services.submission_service import get_pending_submissions

    other = await make_user("other@example.com")
    link = await insert_link(owner["id"], description="Family")
    other_link = await insert_link(other["id"])
    for i in range(5):
        await insert_submission(
            link["id"], name=f"Kid {i}", created_at=clock.ago_db(minutes=10 - i)
        )
    await insert_submission(link["id"], name="Done", status="REJECTED")
    await insert_submission(other_link["id"], name="Not mine")

    page1 = await get_pending_submissions(owner["id"], page=1, limit=2)
    assert page1["total_count"] == 5
    assert page1["total_pages"] == 3
    assert page1["has_next_page"]
    assert not page1["has_previous_page"]
    assert [s["name"] for s in page1["submissions"]] == ["Kid 4", "Kid 3"]
    assert page1["submissions"][0]["sharing_link_description"] == "Family"

    page3 = await get_pending_submissions(owner["id"], page=3, limit=2)
    assert [s["name"] for s in page3["submissions"]] == ["Kid 0"]
    assert not page3["has_next_page"]
    assert page3["has_previous_page"]


@pytest.mark.asyncio
async def test_pending_empty(owner):
    from lazyuncle.services.submission_service import get_pending_submissions

    result = await get_pending_submissions(owner["id"])
    assert result["submissions"] == []
    assert result["total_pages"] == 0
    assert not result["has_next_page"]


@pytest.mark.asyncio
async def test_pending_flags_possible_duplicates(owner, insert_link, insert_submission):
    from lazyuncle.services.birthday_service import create_birthday
    from lazyuncle.services.submission_service import get_pending_submissions

    await create_birthday(owner["id"], "Avery", 3, 2, year=2015)
    link = await insert_link(owner["id"])
    await insert_submission(link["id"], name="Avery", created_at=clock.ago_db(minutes=2))
    await insert_submission(link["id"], name="Morgan", month=7, day=14)

    subs = (await get_pending_submissions(owner["id"]))["submissions"]
    flags = {s["name"]: s["possible_duplicate"] for s in subs}
    assert flags == {"Avery": True, "Morgan": False}


@pytest.mark.asyncio
async def test_submission_duplicates(owner, make_user, insert_link, insert_submission):
    from lazyuncle.services.birthday_service import create_birthday
    from lazyuncle.services.submission_service import get_submission_duplicates

    existing = await create_birthday(owner["id"], "Avery", 3, 2, year=2014)
    link = await insert_link(owner["id"])
    sub_id = await insert_submission(link["id"], name="Avery", year=2015)

    matches = await get_submission_duplicates(sub_id, owner["id"])
    assert [m["id"] for m in matches] == [existing["id"]]
    assert matches[0]["similarity"] == pytest.approx(0.8)

    other = await make_user("other@example.com")
    with pytest.raises(LookupError):
        await get_submission_duplicates(sub_id, other["id"])


@pytest.mark.asyncio
async def test_cleanup_old_rejected(db, owner, insert_link, insert_submission):
    from lazyuncle.services.submission_service import cleanup_old_rejected_submissions

    link = await insert_link(owner["id"])
    old = await insert_submission(link["id"], status="REJECTED", created_at=clock.ago_db(days=31))
    recent = await insert_submission(link["id"], status="REJECTED", created_at=clock.ago_db(days=5))
    pending = await insert_submission(link["id"], created_at=clock.ago_db(days=60))

    assert await cleanup_old_rejected_submissions() == 1
    assert await _status(db, old) is None
    assert await _status(db, recent) == "REJECTED"
    assert await _status(db, pending) == "PENDING"
