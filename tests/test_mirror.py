"""Tests for source-to-mirror alignment and single-record webhook upserts."""

from __future__ import annotations

import pytest

from src.crm_sync.sync.associations import AssociationBuilder
from src.crm_sync.sync.errors import PayloadValidationError, SourceFetchError, UpsertFailedError
from src.crm_sync.sync.mirror import MirrorSync
from src.crm_sync.sync.resolver import Resolver
from src.crm_sync.sync.schemas import EntityType
from tests.doubles import InMemoryCRM, http_error


@pytest.fixture
def source() -> InMemoryCRM:
    return InMemoryCRM("source")


@pytest.fixture
def mirror_crm() -> InMemoryCRM:
    return InMemoryCRM("mirror")


@pytest.fixture
def mirror(source, mirror_crm, remote) -> MirrorSync:
    return MirrorSync(
        source,
        remote,
        Resolver(mirror_crm, remote),
        AssociationBuilder(mirror_crm, remote),
    )


def _contact(character_id: str, name: str) -> dict[str, str]:
    local = name.lower().replace(" ", "")
    return {
        "character_id": character_id,
        "email": f"{local}{character_id}@rickandmorty.com",
        "firstname": name,
        "character_status": "Alive",
    }


# ── Webhook Upserts ──────────────────────────────────────────────────────────


class TestApplyOneRecordChange:
    """One payload, one upsert, keyed by character_id or company name."""

    async def test_contact_created_then_updated(self, mirror, mirror_crm):
        payload = _contact("1", "Rick Sanchez")

        first = await mirror.apply_one_record_change(EntityType.CONTACT, payload)
        second = await mirror.apply_one_record_change(
            EntityType.CONTACT, {**payload, "character_status": "Dead"}
        )

        assert (first, second) == ("created", "updated")
        [record] = mirror_crm.find(EntityType.CONTACT, "character_id", "1")
        assert record["properties"]["character_status"] == "Dead"

    async def test_company_keyed_by_name(self, mirror, mirror_crm):
        payload = {"name": "Earth (C-137)", "industry": "Planet"}

        await mirror.apply_one_record_change(EntityType.COMPANY, payload)
        result = await mirror.apply_one_record_change(EntityType.COMPANY, payload)

        assert result == "updated"
        assert mirror_crm.count(EntityType.COMPANY) == 1

    async def test_missing_email_is_rejected_before_any_remote_call(self, mirror, mirror_crm):
        with pytest.raises(PayloadValidationError, match="email"):
            await mirror.apply_one_record_change(EntityType.CONTACT, {"character_id": "1"})

        assert mirror_crm.calls == []

    async def test_missing_company_name_is_rejected(self, mirror):
        with pytest.raises(PayloadValidationError):
            await mirror.apply_one_record_change(EntityType.COMPANY, {"industry": "Planet"})

    async def test_remote_failure_raises_upsert_failed(self, mirror, mirror_crm):
        mirror_crm.fail_next("create", http_error(400))

        with pytest.raises(UpsertFailedError):
            await mirror.apply_one_record_change(EntityType.CONTACT, _contact("2", "Morty Smith"))


# ── Full Mirror Run ──────────────────────────────────────────────────────────


class TestRunMirrorSync:
    async def test_mirrors_records_and_associations(self, mirror, source, mirror_crm):
        earth = source.add(EntityType.COMPANY, {"name": "Earth (C-137)", "industry": "Planet"})
        rick = source.add(EntityType.CONTACT, _contact("1", "Rick Sanchez"))
        source.add(EntityType.CONTACT, _contact("2", "Morty Smith"))
        source.linked_companies[rick] = [earth]

        summary = await mirror.run_mirror_sync()

        assert summary.companies_synced == 1
        assert summary.contacts_synced == 2
        assert summary.associations_created == 1
        assert summary.associations_skipped == 1
        [mirror_rick] = mirror_crm.find(EntityType.CONTACT, "character_id", "1")
        [mirror_earth] = mirror_crm.find(EntityType.COMPANY, "name", "Earth (C-137)")
        assert mirror_crm.associations == {(mirror_rick["id"], mirror_earth["id"], 1)}
        assert "get" not in source.calls

    async def test_invalid_source_records_are_counted_not_fatal(self, mirror, source):
        source.add(EntityType.COMPANY, {"industry": "Planet"})
        source.add(EntityType.CONTACT, {"character_id": "3", "firstname": "Summer Smith"})
        source.add(EntityType.CONTACT, _contact("4", "Beth Smith"))

        summary = await mirror.run_mirror_sync()

        assert summary.companies_failed == 1
        assert summary.contacts_failed == 1
        assert summary.contacts_synced == 1

    async def test_pages_through_large_source(self, mirror, source, mirror_crm):
        for i in range(150):
            source.add(EntityType.COMPANY, {"name": f"Location {i}"})

        summary = await mirror.run_mirror_sync()

        assert summary.companies_synced == 150
        assert mirror_crm.count(EntityType.COMPANY) == 150
        # two company pages, one contact page
        assert source.calls.count("list_page") == 3

    async def test_rerun_is_idempotent(self, mirror, source, mirror_crm):
        earth = source.add(EntityType.COMPANY, {"name": "Earth (C-137)"})
        rick = source.add(EntityType.CONTACT, _contact("1", "Rick Sanchez"))
        source.linked_companies[rick] = [earth]

        await mirror.run_mirror_sync()
        await mirror.run_mirror_sync()

        assert mirror_crm.count(EntityType.CONTACT) == 1
        assert mirror_crm.count(EntityType.COMPANY) == 1
        assert len(mirror_crm.associations) == 1

    async def test_association_lookup_failure_skips_link(self, mirror, source):
        earth = source.add(EntityType.COMPANY, {"name": "Earth (C-137)"})
        rick = source.add(EntityType.CONTACT, _contact("1", "Rick Sanchez"))
        source.linked_companies[rick] = [earth]
        source.fail_next("list_associated_ids", http_error(404))

        summary = await mirror.run_mirror_sync()

        assert summary.contacts_synced == 1
        assert summary.associations_skipped == 1

    async def test_unreadable_source_page_is_fatal(self, mirror, source):
        source.fail_next("list_page", http_error(403))

        with pytest.raises(SourceFetchError):
            await mirror.run_mirror_sync()


# ── Late Company Resolution ──────────────────────────────────────────────────


class TestLateCompanyResolution:
    """A linked company missing from the run cache is read from the source by id."""

    async def test_company_failed_earlier_is_resolved_for_its_contact(
        self, mirror, source, mirror_crm
    ):
        earth = source.add(EntityType.COMPANY, {"name": "Earth (C-137)", "industry": "Planet"})
        rick = source.add(EntityType.CONTACT, _contact("1", "Rick Sanchez"))
        source.linked_companies[rick] = [earth]
        # first mirror create of the run is the Earth company
        mirror_crm.fail_next("create", http_error(400))

        summary = await mirror.run_mirror_sync()

        assert summary.companies_failed == 1
        assert summary.companies_synced == 1
        assert summary.associations_created == 1
        assert source.calls.count("get") == 1
        [mirror_rick] = mirror_crm.find(EntityType.CONTACT, "character_id", "1")
        [mirror_earth] = mirror_crm.find(EntityType.COMPANY, "name", "Earth (C-137)")
        assert mirror_earth["properties"]["industry"] == "Planet"
        assert mirror_crm.associations == {(mirror_rick["id"], mirror_earth["id"], 1)}

    async def test_late_company_is_cached_for_later_contacts(self, mirror, source, mirror_crm):
        earth = source.add(EntityType.COMPANY, {"name": "Earth (C-137)"})
        rick = source.add(EntityType.CONTACT, _contact("1", "Rick Sanchez"))
        morty = source.add(EntityType.CONTACT, _contact("2", "Morty Smith"))
        source.linked_companies[rick] = [earth]
        source.linked_companies[morty] = [earth]
        mirror_crm.fail_next("create", http_error(400))

        summary = await mirror.run_mirror_sync()

        assert source.calls.count("get") == 1
        assert summary.associations_created == 2
        assert mirror_crm.count(EntityType.COMPANY) == 1

    async def test_unknown_source_company_skips_link(self, mirror, source, mirror_crm):
        rick = source.add(EntityType.CONTACT, _contact("1", "Rick Sanchez"))
        source.linked_companies[rick] = ["999"]

        summary = await mirror.run_mirror_sync()

        assert summary.contacts_synced == 1
        assert summary.associations_skipped == 1
        assert summary.companies_failed == 0
        assert "get" in source.calls
        assert mirror_crm.count(EntityType.COMPANY) == 0

    async def test_invalid_late_company_skips_link(self, mirror, source, mirror_crm):
        nameless = source.add(EntityType.COMPANY, {"industry": "Planet"})
        rick = source.add(EntityType.CONTACT, _contact("1", "Rick Sanchez"))
        source.linked_companies[rick] = [nameless]

        summary = await mirror.run_mirror_sync()

        # counted once, in the company phase
        assert summary.companies_failed == 1
        assert summary.contacts_synced == 1
        assert summary.associations_skipped == 1
        assert mirror_crm.count(EntityType.COMPANY) == 0
