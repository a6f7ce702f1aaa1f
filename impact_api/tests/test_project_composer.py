"""
Project composer tests: validation, contribution bookkeeping and soft delete
"""

import random

import pytest
from sqlalchemy import select, func

from impact_api.core.exceptions import ValidationError, NotFoundError
from impact_api.models.project import Project, ProjectFocusArea, ProjectImpact
from impact_api.schemas.project import ProjectInput, ProjectUpdate
from impact_api.services.impact_ledger import ImpactLedger
from impact_api.services.project_composer import ProjectComposer, contribution_deltas


async def contributions_of(db, project_id: int) -> dict:
    rows = (await db.execute(
        select(ProjectImpact.impact_id, ProjectImpact.contribution_value)
        .where(ProjectImpact.project_id == project_id)
    )).all()
    return dict(rows)


async def project_count(db) -> int:
    return (await db.execute(select(func.count(Project.id)))).scalar_one()


async def lose_connection(ledger, deltas):
    raise RuntimeError("connection lost while updating totals")


class TestContributionDeltas:
    """Test the per-impact difference between two contribution maps"""

    def test_changed_added_and_removed(self):
        assert contribution_deltas({1: 50, 2: 30}, {1: 30, 3: 10}) == {1: -20, 2: -30, 3: 10}

    def test_unchanged_values_produce_no_delta(self):
        assert contribution_deltas({1: 50}, {1: 50}) == {}

    def test_from_and_to_empty(self):
        assert contribution_deltas({}, {4: 7}) == {4: 7}
        assert contribution_deltas({4: 7}, {}) == {4: -7}


class TestTotalsLifecycle:
    """Test impact totals across a project lifecycle"""

    async def test_trees_planted_lifecycle(self, test_db, trees_impact, make_project, read_total):
        """Test totals through create, create, update, delete and recalculate"""
        composer = ProjectComposer(test_db)

        first = await make_project({trees_impact: 200})
        assert await read_total(trees_impact) == 1200

        second = await make_project({trees_impact: 300}, title="River Cleanup")
        assert await read_total(trees_impact) == 1500

        await composer.update_project(
            first,
            ProjectUpdate(project_impacts=[{"impact_id": trees_impact, "contribution_value": 50}])
        )
        assert await read_total(trees_impact) == 1350

        await composer.delete_project(second)
        assert await read_total(trees_impact) == 1050

        report = await ImpactLedger(test_db).recalculate()
        assert report.impacts_corrected == 0
        assert await read_total(trees_impact) == 1050

    async def test_update_applies_only_the_difference(
        self, test_db, trees_impact, people_impact, make_project, read_total
    ):
        """Test changed rows move by the difference and removed rows are withdrawn"""
        project_id = await make_project({trees_impact: 50, people_impact: 30})
        assert await read_total(trees_impact) == 1050
        assert await read_total(people_impact) == 30

        await ProjectComposer(test_db).update_project(
            project_id,
            ProjectUpdate(project_impacts=[{"impact_id": trees_impact, "contribution_value": 30}])
        )

        assert await read_total(trees_impact) == 1030
        assert await read_total(people_impact) == 0
        assert await contributions_of(test_db, project_id) == {trees_impact: 30}

    async def test_update_without_contributions_keeps_them(self, test_db, trees_impact, make_project, read_total):
        project_id = await make_project({trees_impact: 200})

        project = await ProjectComposer(test_db).update_project(
            project_id, ProjectUpdate(location="Lamu", short_description="Coastal work")
        )

        assert project.location == "Lamu"
        assert project.title == "Mangrove Restoration"
        assert await contributions_of(test_db, project_id) == {trees_impact: 200}
        assert await read_total(trees_impact) == 1200

    async def test_update_with_empty_list_withdraws_everything(
        self, test_db, trees_impact, make_project, read_total
    ):
        project_id = await make_project({trees_impact: 200})

        await ProjectComposer(test_db).update_project(project_id, ProjectUpdate(project_impacts=[]))

        assert await contributions_of(test_db, project_id) == {}
        assert await read_total(trees_impact) == 1000

    async def test_hidden_project_keeps_contributing(self, test_db, trees_impact, make_project, read_total):
        """Test hiding a project leaves the totals alone"""
        project_id = await make_project({trees_impact: 200})
        composer = ProjectComposer(test_db)

        project = await composer.set_hidden(project_id, True)
        assert project.is_hidden is True
        assert await read_total(trees_impact) == 1200

        project = await composer.toggle_hidden(project_id)
        assert project.is_hidden is False
        assert await read_total(trees_impact) == 1200

    async def test_project_created_hidden_still_counts(self, trees_impact, make_project, read_total):
        await make_project({trees_impact: 75}, is_hidden=True)

        assert await read_total(trees_impact) == 1075

    async def test_soft_delete(self, test_db, trees_impact, make_project, read_total):
        """Test soft delete withdraws contributions and keeps the row for history"""
        project_id = await make_project({trees_impact: 200}, is_featured=True)

        await ProjectComposer(test_db).delete_project(project_id)

        row = (await test_db.execute(
            select(Project.is_deleted, Project.is_hidden, Project.is_featured, Project.deleted_at)
            .where(Project.id == project_id)
        )).one()
        assert row.is_deleted is True
        assert row.is_hidden is True
        assert row.is_featured is False
        assert row.deleted_at is not None
        assert await contributions_of(test_db, project_id) == {}
        assert await read_total(trees_impact) == 1000

    async def test_deleted_project_cannot_be_changed(self, test_db, trees_impact, make_project):
        project_id = await make_project({trees_impact: 200})
        composer = ProjectComposer(test_db)
        await composer.delete_project(project_id)

        with pytest.raises(NotFoundError):
            await composer.delete_project(project_id)
        with pytest.raises(NotFoundError):
            await composer.update_project(project_id, ProjectUpdate(title="Back again"))
        with pytest.raises(NotFoundError):
            await composer.toggle_featured(project_id)


class TestProjectValidation:
    """Test validation failures leave everything untouched"""

    async def test_duplicate_impact_rejected(
        self, test_db, pillar, focus_areas, trees_impact, people_impact, read_total
    ):
        """Test listing the same impact twice names the offending entry"""
        payload = ProjectInput(
            title="Coral Nursery",
            description="Reef restoration",
            pillar_id=pillar,
            focus_area_ids=[focus_areas["Water"]],
            project_impacts=[
                {"impact_id": people_impact, "contribution_value": 10},
                {"impact_id": people_impact, "contribution_value": 20},
                {"impact_id": trees_impact, "contribution_value": 5},
            ],
        )

        with pytest.raises(ValidationError) as exc_info:
            await ProjectComposer(test_db).create_project(payload)

        error = exc_info.value.errors[0]
        assert error["field"] == "project_impacts[1].impact_id"
        assert f"Duplicate impact {people_impact}" in error["message"]
        assert await project_count(test_db) == 0
        assert await read_total(people_impact) == 0
        assert await read_total(trees_impact) == 1000

    async def test_unknown_impact_rejected(self, test_db, pillar, focus_areas):
        payload = ProjectInput(
            title="Coral Nursery",
            description="Reef restoration",
            pillar_id=pillar,
            focus_area_ids=[focus_areas["Water"]],
            project_impacts=[{"impact_id": 777, "contribution_value": 10}],
        )

        with pytest.raises(ValidationError) as exc_info:
            await ProjectComposer(test_db).create_project(payload)

        assert exc_info.value.errors[0]["field"] == "project_impacts"
        assert await project_count(test_db) == 0

    @pytest.mark.parametrize("value", [0, -3, None])
    async def test_non_positive_contribution_rejected(self, test_db, pillar, focus_areas, trees_impact, value):
        payload = ProjectInput(
            title="Coral Nursery",
            description="Reef restoration",
            pillar_id=pillar,
            focus_area_ids=[focus_areas["Water"]],
            project_impacts=[{"impact_id": trees_impact, "contribution_value": value}],
        )

        with pytest.raises(ValidationError) as exc_info:
            await ProjectComposer(test_db).create_project(payload)

        assert exc_info.value.errors[0]["field"] == "project_impacts[0].contribution_value"

    async def test_focus_area_outside_pillar_rejected(self, test_db, pillar, focus_areas):
        payload = ProjectInput(
            title="Night School",
            description="Adult literacy",
            pillar_id=pillar,
            focus_area_ids=[focus_areas["Climate"], focus_areas["Education"]],
        )

        with pytest.raises(ValidationError) as exc_info:
            await ProjectComposer(test_db).create_project(payload)

        assert exc_info.value.errors[0]["field"] == "focus_area_ids"

    async def test_focus_area_required(self, test_db, pillar):
        payload = ProjectInput(title="Night School", description="Adult literacy", pillar_id=pillar)

        with pytest.raises(ValidationError) as exc_info:
            await ProjectComposer(test_db).create_project(payload)

        assert {e["field"] for e in exc_info.value.errors} == {"focus_area_ids"}

    async def test_unknown_pillar_and_country_rejected(self, test_db, focus_areas):
        payload = ProjectInput(
            title="Night School",
            description="Adult literacy",
            pillar_id=404,
            country_id=404,
            focus_area_ids=[focus_areas["Climate"]],
        )

        with pytest.raises(ValidationError) as exc_info:
            await ProjectComposer(test_db).create_project(payload)

        fields = {e["field"] for e in exc_info.value.errors}
        assert {"pillar_id", "country_id"} <= fields

    async def test_errors_are_collected_together(self, test_db, pillar, focus_areas):
        payload = ProjectInput(
            title="  ",
            description="",
            pillar_id=pillar,
            focus_area_ids=[focus_areas["Climate"]],
            sdg_goals=[3, 18],
        )

        with pytest.raises(ValidationError) as exc_info:
            await ProjectComposer(test_db).create_project(payload)

        fields = {e["field"] for e in exc_info.value.errors}
        assert fields == {"title", "description", "sdg_goals"}

    async def test_end_date_before_start_date_rejected(self, test_db, pillar, focus_areas):
        payload = ProjectInput(
            title="Night School",
            description="Adult literacy",
            pillar_id=pillar,
            focus_area_ids=[focus_areas["Climate"]],
            start_date="2024-06-01",
            end_date="2024-01-01",
        )

        with pytest.raises(ValidationError) as exc_info:
            await ProjectComposer(test_db).create_project(payload)

        assert exc_info.value.errors[0]["field"] == "end_date"

    async def test_invalid_update_leaves_totals_unchanged(
        self, test_db, trees_impact, make_project, read_total
    ):
        """Test a rejected update keeps the old contributions and totals"""
        project_id = await make_project({trees_impact: 200})

        with pytest.raises(ValidationError):
            await ProjectComposer(test_db).update_project(
                project_id,
                ProjectUpdate(project_impacts=[
                    {"impact_id": trees_impact, "contribution_value": 10},
                    {"impact_id": trees_impact, "contribution_value": 20},
                ])
            )

        assert await contributions_of(test_db, project_id) == {trees_impact: 200}
        assert await read_total(trees_impact) == 1200

    async def test_changing_pillar_revalidates_focus_areas(self, test_db, make_project, other_pillar):
        """Test keeping the old pillar's focus areas under a new pillar is rejected"""
        project_id = await make_project()

        with pytest.raises(ValidationError) as exc_info:
            await ProjectComposer(test_db).update_project(project_id, ProjectUpdate(pillar_id=other_pillar))

        assert exc_info.value.errors[0]["field"] == "focus_area_ids"


class TestProjectAssociations:
    """Test focus areas, slugs and normalized fields"""

    async def test_focus_areas_stored_in_order(self, test_db, make_project, focus_areas):
        project_id = await make_project(focus_area_ids=[focus_areas["Water"], focus_areas["Climate"]])

        stored = (await test_db.execute(
            select(ProjectFocusArea.category_id)
            .where(ProjectFocusArea.project_id == project_id)
            .order_by(ProjectFocusArea.position)
        )).scalars().all()
        assert stored == [focus_areas["Water"], focus_areas["Climate"]]

        category_id = (await test_db.execute(
            select(Project.category_id).where(Project.id == project_id)
        )).scalar_one()
        assert category_id == focus_areas["Water"]

    async def test_legacy_category_id_is_accepted(self, test_db, make_project, focus_areas):
        project_id = await make_project(focus_area_ids=[], category_id=focus_areas["Water"])

        stored = (await test_db.execute(
            select(ProjectFocusArea.category_id).where(ProjectFocusArea.project_id == project_id)
        )).scalars().all()
        assert stored == [focus_areas["Water"]]

    async def test_lone_category_id_replaces_selection_on_update(self, test_db, make_project, focus_areas):
        project_id = await make_project(focus_area_ids=[focus_areas["Climate"], focus_areas["Water"]])

        await ProjectComposer(test_db).update_project(project_id, ProjectUpdate(category_id=focus_areas["Water"]))

        stored = (await test_db.execute(
            select(ProjectFocusArea.category_id).where(ProjectFocusArea.project_id == project_id)
        )).scalars().all()
        assert stored == [focus_areas["Water"]]

    async def test_slugs_are_unique(self, test_db, make_project):
        first = await make_project(title="Clean Water for All!")
        second = await make_project(title="Clean Water for All!")

        slugs = (await test_db.execute(
            select(Project.slug).where(Project.id.in_([first, second])).order_by(Project.id)
        )).scalars().all()
        assert slugs == ["clean-water-for-all", "clean-water-for-all-1"]

    async def test_title_change_regenerates_slug(self, test_db, make_project):
        project_id = await make_project()

        project = await ProjectComposer(test_db).update_project(project_id, ProjectUpdate(title="Seagrass Meadows"))

        assert project.slug == "seagrass-meadows"

    async def test_sdg_goals_and_testimonials_normalized(self, test_db, make_project):
        project_id = await make_project(
            sdg_goals=[13, 6, 13, 1],
            testimonials=[
                {"text": "  It changed our village ", "author": "Amina", "position": None},
                {"text": "", "author": " ", "position": ""},
            ],
        )

        row = (await test_db.execute(
            select(Project.sdg_goals, Project.testimonials).where(Project.id == project_id)
        )).one()
        assert row.sdg_goals == [1, 6, 13]
        assert row.testimonials == [{"text": "It changed our village", "author": "Amina", "position": ""}]

    async def test_featured_flag(self, test_db, make_project):
        project_id = await make_project()
        composer = ProjectComposer(test_db)

        project = await composer.toggle_featured(project_id)
        assert project.is_featured is True

        project = await composer.set_featured(project_id, False)
        assert project.is_featured is False


class TestLedgerFailureRollback:
    """Test a failed total update discards the contribution rows written with it"""

    async def test_create_leaves_nothing_behind(
        self, test_db, pillar, focus_areas, trees_impact, read_total, monkeypatch
    ):
        monkeypatch.setattr(ImpactLedger, "apply_contribution_deltas", lose_connection)
        payload = ProjectInput(
            title="Coral Nursery",
            description="Reef restoration",
            pillar_id=pillar,
            focus_area_ids=[focus_areas["Water"]],
            project_impacts=[{"impact_id": trees_impact, "contribution_value": 5}],
        )

        with pytest.raises(RuntimeError):
            await ProjectComposer(test_db).create_project(payload)

        assert await project_count(test_db) == 0
        assert (await test_db.execute(select(func.count(ProjectImpact.id)))).scalar_one() == 0
        assert (await test_db.execute(select(func.count(ProjectFocusArea.project_id)))).scalar_one() == 0
        assert await read_total(trees_impact) == 1000

    async def test_update_keeps_previous_rows(
        self, test_db, trees_impact, people_impact, make_project, read_total, monkeypatch
    ):
        project_id = await make_project({trees_impact: 200})

        monkeypatch.setattr(ImpactLedger, "apply_contribution_deltas", lose_connection)

        with pytest.raises(RuntimeError):
            await ProjectComposer(test_db).update_project(project_id, ProjectUpdate(
                title="Renamed",
                project_impacts=[
                    {"impact_id": trees_impact, "contribution_value": 50},
                    {"impact_id": people_impact, "contribution_value": 30},
                ],
            ))

        title = (await test_db.execute(select(Project.title).where(Project.id == project_id))).scalar_one()
        assert title == "Mangrove Restoration"
        assert await contributions_of(test_db, project_id) == {trees_impact: 200}
        assert await read_total(trees_impact) == 1200
        assert await read_total(people_impact) == 0

    async def test_delete_keeps_project_live(
        self, test_db, trees_impact, make_project, read_total, monkeypatch
    ):
        project_id = await make_project({trees_impact: 200})

        monkeypatch.setattr(ImpactLedger, "apply_contribution_deltas", lose_connection)

        with pytest.raises(RuntimeError):
            await ProjectComposer(test_db).delete_project(project_id)

        is_deleted = (await test_db.execute(select(Project.is_deleted).where(Project.id == project_id))).scalar_one()
        assert is_deleted is False
        assert await contributions_of(test_db, project_id) == {trees_impact: 200}
        assert await read_total(trees_impact) == 1200


class TestLedgerInvariant:
    """Test totals stay consistent across a long mix of operations"""

    async def test_random_operation_sequence(self, test_db, trees_impact, people_impact, make_project):
        rng = random.Random(7)
        composer = ProjectComposer(test_db)
        ledger = ImpactLedger(test_db)
        impact_ids = [trees_impact, people_impact]
        live = []

        for step in range(40):
            action = rng.choice(["create", "update", "update", "hide", "delete"]) if live else "create"
            if action == "create":
                chosen = rng.sample(impact_ids, rng.randint(0, 2))
                live.append(await make_project(
                    {impact_id: rng.randint(1, 500) for impact_id in chosen},
                    title=f"Project {step}"
                ))
            elif action == "update":
                chosen = rng.sample(impact_ids, rng.randint(0, 2))
                await composer.update_project(rng.choice(live), ProjectUpdate(project_impacts=[
                    {"impact_id": impact_id, "contribution_value": rng.randint(1, 500)} for impact_id in chosen
                ]))
            elif action == "hide":
                await composer.toggle_hidden(rng.choice(live))
            else:
                project_id = rng.choice(live)
                live.remove(project_id)
                await composer.delete_project(project_id)

            report = await ledger.audit()
            assert report.consistent, f"drift after step {step} ({action}): {report.drift}"
