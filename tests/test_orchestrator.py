"""Tests for the form orchestrator: auto-fill, navigation, persistence and submission."""

from __future__ import annotations

import asyncio
import logging

import pytest

from stepform.core.types import SubmissionResult
from stepform.forms.models import FormConfig
from stepform.forms.orchestrator import FormContext, FormOrchestrator
from stepform.forms.session import FormSessionStore


BUILDING = {
    "buildingType": "einfamilienhaus",
    "numberOfUnits": 1,
    "constructionYear": 1985,
    "livingArea": 140,
    "renovated": "nein",
}

CONSUMPTION = {
    "mainFuel": "erdgas",
    "hotWaterIncluded": "included",
    "billingPeriod1": "2024-11_2025-10",
    "fuelConsumption1": 18000,
    "billingPeriod2": "2023-11_2024-10",
    "fuelConsumption2": 17500,
    "billingPeriod3": "2022-11_2023-10",
    "fuelConsumption3": 19000,
}

CONTACT = {
    "firstName": "Erika",
    "lastName": "Mustermann",
    "email": "erika@example.de",
    "postalCode": "10115",
    "consent": ["privacy"],
}


@pytest.fixture
def storage():
    return {}


@pytest.fixture
def store(storage):
    return FormSessionStore(storage)


@pytest.fixture
def orchestrator(energy_form, store, fake_transport):
    return FormOrchestrator(FormContext(
        config=energy_form, store=store, transport=fake_transport, product_id="42",
    ))


def complete(orchestrator: FormOrchestrator) -> None:
    for submission in (BUILDING, CONSUMPTION, CONTACT):
        assert orchestrator.next(submission).valid


class TestAutoFill:
    def test_building_type_sets_units(self, orchestrator):
        changes = orchestrator.set_value("buildingType", "zweifamilienhaus")
        assert changes == {"buildingType": "zweifamilienhaus", "numberOfUnits": 2}
        assert orchestrator.values["numberOfUnits"] == 2

    def test_multi_family_raises_small_counts(self, orchestrator):
        orchestrator.set_value("buildingType", "einfamilienhaus")
        changes = orchestrator.set_value("buildingType", "mehrfamilienhaus")
        assert changes["numberOfUnits"] == 3

    def test_multi_family_keeps_manual_count(self, orchestrator):
        orchestrator.set_value("buildingType", "mehrfamilienhaus")
        orchestrator.set_value("numberOfUnits", 12)
        orchestrator.set_value("buildingType", "sonstiges")
        assert orchestrator.values["numberOfUnits"] == 1
        orchestrator.set_value("numberOfUnits", 12)
        changes = orchestrator.set_value("buildingType", "mehrfamilienhaus")
        assert changes == {"buildingType": "mehrfamilienhaus"}
        assert orchestrator.values["numberOfUnits"] == 12

    def test_billing_period_derives_previous_years(self, orchestrator):
        changes = orchestrator.set_value("billingPeriod1", "2024-11_2025-10")
        assert changes == {
            "billingPeriod1": "2024-11_2025-10",
            "billingPeriod2": "2023-11_2024-10",
            "billingPeriod3": "2022-11_2023-10",
        }

    def test_unchanged_value_reports_nothing(self, orchestrator, storage):
        orchestrator.set_value("firstName", "Erika")
        storage.clear()
        assert orchestrator.set_value("firstName", "Erika") == {}
        assert storage == {}

    def test_value_change_is_persisted(self, orchestrator, store):
        orchestrator.set_value("firstName", "Erika")
        assert store.load("energy-certificate").values == {"firstName": "Erika"}

    def test_persistence_failure_is_logged(self, energy_form, caplog):
        class BrokenStorage(dict):
            def __setitem__(self, key, value):
                raise OSError("quota exceeded")

        orchestrator = FormOrchestrator(FormContext(
            config=energy_form, store=FormSessionStore(BrokenStorage()),
        ))
        with caplog.at_level(logging.ERROR, logger="stepform.forms.orchestrator"):
            assert orchestrator.set_value("firstName", "Erika") == {"firstName": "Erika"}
        assert "Failed to persist session" in caplog.text


class TestVisibility:
    def test_dependent_fields_follow_values(self, orchestrator):
        assert not orchestrator.is_visible("renovationMeasures")
        orchestrator.set_value("renovated", "ja")
        assert orchestrator.is_visible("renovationMeasures")
        assert not orchestrator.is_visible("insulationThickness")
        orchestrator.set_value("renovationMeasures", ["windows", "insulation"])
        assert orchestrator.is_visible("insulationThickness")

    def test_stale_value_does_not_reveal(self, orchestrator):
        orchestrator.set_value("renovated", "ja")
        orchestrator.set_value("renovationMeasures", ["insulation"])
        orchestrator.set_value("renovated", "nein")
        assert not orchestrator.is_visible("insulationThickness")
        names = [f.name for f in orchestrator.visible_fields()]
        assert "insulationThickness" not in names
        assert "renovationMeasures" not in names

    def test_unknown_field(self, orchestrator):
        with pytest.raises(KeyError):
            orchestrator.is_visible("nope")

    def test_fields_to_revalidate(self, orchestrator):
        assert orchestrator.fields_to_revalidate("constructionYear") == {"heatingYear", "renovationYear"}
        assert orchestrator.fields_to_revalidate("numberOfUnits") == {"livingArea"}


class TestNavigation:
    def test_next_advances_on_valid_step(self, orchestrator, store):
        result = orchestrator.next(BUILDING)
        assert result.valid
        assert orchestrator.current_step_index == 1
        assert orchestrator.current_step.id == "consumption"
        assert store.load("energy-certificate").step == 1

    def test_next_blocks_on_invalid_step(self, orchestrator):
        result = orchestrator.next({**BUILDING, "livingArea": ""})
        assert not result.valid
        assert result.errors == {"livingArea": ["Wohnfläche is required"]}
        assert orchestrator.current_step_index == 0

    def test_custom_rule_blocks_step(self, orchestrator):
        result = orchestrator.next({**BUILDING, "heatingYear": 1970})
        assert result.errors == {"heatingYear": ["Die Heizung kann nicht älter als das Gebäude sein"]}

    def test_legacy_rule_blocks_step(self, orchestrator):
        result = orchestrator.next({**BUILDING, "numberOfUnits": 200, "livingArea": 150})
        assert result.errors == {
            "livingArea": ["Die Wohnfläche ist zu klein für die Anzahl der Wohneinheiten"]
        }

    def test_next_without_submission_uses_current_values(self, orchestrator):
        for name, value in BUILDING.items():
            orchestrator.set_value(name, value)
        assert orchestrator.next().valid
        assert orchestrator.current_step_index == 1

    def test_next_stores_coerced_values(self, orchestrator):
        orchestrator.next({**BUILDING, "constructionYear": "1985"})
        assert orchestrator.values["constructionYear"] == 1985

    def test_last_step_does_not_advance(self, orchestrator):
        complete(orchestrator)
        assert orchestrator.is_last_step
        assert orchestrator.current_step_index == 2

    def test_previous(self, orchestrator):
        orchestrator.next(BUILDING)
        assert orchestrator.previous({"mainFuel": "heizoel"}) == 0
        assert orchestrator.values["mainFuel"] == "heizoel"

    def test_previous_at_first_step(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.previous()

    def test_go_to_only_backwards(self, orchestrator):
        orchestrator.next(BUILDING)
        orchestrator.next(CONSUMPTION)
        with pytest.raises(ValueError):
            orchestrator.go_to(2)
        assert orchestrator.go_to(0) == 0
        with pytest.raises(ValueError):
            orchestrator.go_to(1)

    def test_validate_step_does_not_move(self, orchestrator):
        assert not orchestrator.validate_step({}).valid
        assert orchestrator.current_step_index == 0


class TestSessionLifecycle:
    def test_start_restores_snapshot(self, energy_form, store):
        store.save("energy-certificate", {"firstName": "Erika"}, 1)
        orchestrator = FormOrchestrator(FormContext(config=energy_form, store=store))
        snapshot = orchestrator.start()
        assert snapshot is not None
        assert orchestrator.values == {"firstName": "Erika"}
        assert orchestrator.current_step_index == 1

    def test_start_clamps_step(self, energy_form, store):
        store.save("energy-certificate", {}, 9)
        orchestrator = FormOrchestrator(FormContext(config=energy_form, store=store))
        orchestrator.start()
        assert orchestrator.current_step_index == 2

    def test_start_without_snapshot(self, orchestrator):
        assert orchestrator.start() is None
        assert orchestrator.values == {}

    def test_reset(self, orchestrator, store):
        orchestrator.next(BUILDING)
        blanks = orchestrator.reset()
        assert store.load("energy-certificate") is None
        assert orchestrator.values == {}
        assert orchestrator.current_step_index == 0
        assert blanks["consent"] == []
        assert blanks["renovationMeasures"] == []
        assert blanks["firstName"] == ""

    def test_session_id_scopes_persistence(self, energy_form, store):
        store.save("energy-certificate", {"firstName": "Erika"}, 1, session_id="other")
        orchestrator = FormOrchestrator(FormContext(
            config=energy_form, store=store, session_id="mine",
        ))
        assert orchestrator.start() is None
        orchestrator.set_value("firstName", "Max")
        assert store.load("energy-certificate", "mine").values == {"firstName": "Max"}
        assert store.load("energy-certificate", "other").values == {"firstName": "Erika"}
        orchestrator.reset()
        assert store.load("energy-certificate", "mine") is None
        assert store.load("energy-certificate", "other") is not None

    def test_form_without_steps(self):
        with pytest.raises(ValueError):
            FormOrchestrator(FormContext(config=FormConfig(form_id="empty")))


class TestSubmit:
    async def test_successful_submission_clears_session(self, orchestrator, store, fake_transport):
        complete(orchestrator)
        result = await orchestrator.submit()
        assert result.success
        assert store.load("energy-certificate") is None

        call = fake_transport.calls[0]
        assert call["form_id"] == "energy-certificate"
        assert call["product_id"] == "42"
        names = [entry.field_name for entry in call["entries"]]
        assert names[:2] == ["buildingType", "numberOfUnits"]
        assert "renovationMeasures" not in names
        assert "floorPlan" not in names

    async def test_explicit_product_id_wins(self, orchestrator, fake_transport):
        complete(orchestrator)
        await orchestrator.submit(product_id="7")
        assert fake_transport.calls[0]["product_id"] == "7"

    async def test_invalid_answers_are_not_sent(self, orchestrator, fake_transport, store):
        orchestrator.next(BUILDING)
        result = await orchestrator.submit()
        assert not result.success
        assert result.message == "Please correct the highlighted fields."
        assert "email" in result.errors
        assert fake_transport.calls == []
        assert store.load("energy-certificate") is not None

    async def test_failure_keeps_session(self, energy_form, store, transport_factory):
        transport = transport_factory(SubmissionResult(success=False, message="Server nicht erreichbar"))
        orchestrator = FormOrchestrator(FormContext(config=energy_form, store=store, transport=transport))
        complete(orchestrator)
        result = await orchestrator.submit()
        assert not result.success
        assert result.message == "Server nicht erreichbar"
        assert store.load("energy-certificate") is not None
        assert not orchestrator.is_submitting

    async def test_only_one_submission_in_flight(self, energy_form, store, transport_factory):
        transport = transport_factory(block=True)
        orchestrator = FormOrchestrator(FormContext(config=energy_form, store=store, transport=transport))
        complete(orchestrator)

        first = asyncio.create_task(orchestrator.submit())
        await asyncio.sleep(0)
        assert orchestrator.is_submitting

        second = await orchestrator.submit()
        assert not second.success
        assert second.message == "A submission is already in progress."

        transport.release()
        assert (await first).success
        assert len(transport.calls) == 1
        assert not orchestrator.is_submitting

    async def test_missing_transport(self, energy_form):
        orchestrator = FormOrchestrator(FormContext(config=energy_form))
        with pytest.raises(RuntimeError):
            await orchestrator.submit()

    def test_submission_entries(self, orchestrator):
        complete(orchestrator)
        entries = {entry.field_name: entry for entry in orchestrator.submission_entries()}
        assert entries["email"].label == "E-Mail"
        assert entries["email"].field_type == "email"
        assert entries["consent"].value == ["privacy"]
        assert "heatingYear" not in entries
