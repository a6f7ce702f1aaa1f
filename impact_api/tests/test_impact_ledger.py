"""
Impact ledger tests
"""

import pytest
from sqlalchemy import select, update

from impact_api.core.exceptions import ValidationError, ConflictError, NotFoundError, LedgerIntegrityError
from impact_api.models.impact import Impact, DEFAULT_IMPACT_COLOR
from impact_api.models.project import ProjectImpact
from impact_api.schemas.impact import ImpactCreate, ImpactUpdate
from impact_api.services.impact_ledger import ImpactLedger, project_counts_towards_totals
from impact_api.services.project_composer import ProjectComposer


class TestImpactDefinitions:
    """Test creating, updating and deleting impacts"""

    async def test_create_impact_starts_at_baseline(self, test_db):
        """Test a new impact's total equals its starting value"""
        impact = await ImpactLedger(test_db).create_impact(
            ImpactCreate(name="  Trees Planted ", unit="trees", starting_value=1000)
        )

        assert impact.name == "Trees Planted"
        assert impact.starting_value == 1000
        assert impact.current_value == 1000
        assert impact.color == DEFAULT_IMPACT_COLOR

    async def test_create_impact_rejects_negative_values(self, test_db):
        """Test negative starting value and order index are field errors"""
        with pytest.raises(ValidationError) as exc_info:
            await ImpactLedger(test_db).create_impact(
                ImpactCreate(name="Wells Dug", starting_value=-5, order_index=-1)
            )

        fields = {error["field"] for error in exc_info.value.errors}
        assert fields == {"starting_value", "order_index"}

    async def test_create_impact_rejects_blank_name(self, test_db):
        with pytest.raises(ValidationError):
            await ImpactLedger(test_db).create_impact(ImpactCreate(name="   "))

    async def test_create_impact_rejects_duplicate_name(self, test_db, trees_impact):
        """Test names are unique regardless of case"""
        with pytest.raises(ConflictError):
            await ImpactLedger(test_db).create_impact(ImpactCreate(name="trees planted"))

    async def test_starting_value_is_write_once(self, test_db, trees_impact, read_total):
        """Test changing the starting value is rejected and nothing changes"""
        with pytest.raises(ValidationError) as exc_info:
            await ImpactLedger(test_db).update_impact(trees_impact, ImpactUpdate(starting_value=5))

        assert exc_info.value.errors[0]["field"] == "starting_value"
        stored = (await test_db.execute(
            select(Impact.starting_value).where(Impact.id == trees_impact)
        )).scalar_one()
        assert stored == 1000
        assert await read_total(trees_impact) == 1000

    async def test_resending_same_starting_value_is_accepted(self, test_db, trees_impact):
        """Test clients echoing the stored starting value can still update metadata"""
        impact = await ImpactLedger(test_db).update_impact(
            trees_impact,
            ImpactUpdate(starting_value=1000, unit="saplings", is_featured=True)
        )

        assert impact.unit == "saplings"
        assert impact.is_featured is True

    async def test_current_value_override(self, test_db, trees_impact, read_total):
        """Test administrators can override a total directly"""
        await ImpactLedger(test_db).update_impact(trees_impact, ImpactUpdate(current_value=4321))

        assert await read_total(trees_impact) == 4321

    async def test_update_requires_fields(self, test_db, trees_impact):
        with pytest.raises(ValidationError):
            await ImpactLedger(test_db).update_impact(trees_impact, ImpactUpdate())

    async def test_update_rejects_null_name(self, test_db, trees_impact):
        with pytest.raises(ValidationError) as exc_info:
            await ImpactLedger(test_db).update_impact(trees_impact, ImpactUpdate(name=None))

        assert exc_info.value.errors[0]["field"] == "name"

    async def test_update_rejects_name_taken_by_other_impact(self, test_db, trees_impact, people_impact):
        with pytest.raises(ConflictError):
            await ImpactLedger(test_db).update_impact(people_impact, ImpactUpdate(name="Trees Planted"))

    async def test_update_missing_impact(self, test_db):
        with pytest.raises(NotFoundError):
            await ImpactLedger(test_db).update_impact(999, ImpactUpdate(unit="x"))

    async def test_delete_unused_impact(self, test_db, people_impact):
        await ImpactLedger(test_db).delete_impact(people_impact)

        remaining = (await test_db.execute(select(Impact.id).where(Impact.id == people_impact))).first()
        assert remaining is None

    async def test_delete_impact_with_live_project_conflicts(self, test_db, trees_impact, make_project):
        """Test an impact referenced by a live project cannot be deleted"""
        await make_project({trees_impact: 200})

        with pytest.raises(ConflictError) as exc_info:
            await ImpactLedger(test_db).delete_impact(trees_impact)

        assert exc_info.value.details["references"] == {"projects": 1}

    async def test_delete_impact_after_project_deleted(self, test_db, trees_impact, make_project):
        """Test soft-deleted projects no longer block deletion"""
        project_id = await make_project({trees_impact: 200})
        await ProjectComposer(test_db).delete_project(project_id)

        await ImpactLedger(test_db).delete_impact(trees_impact)

        with pytest.raises(NotFoundError):
            await ImpactLedger(test_db).get_impact(trees_impact)


class TestContributionDeltas:
    """Test delta application against impact totals"""

    async def test_deltas_move_totals(self, test_db, trees_impact, people_impact, read_total):
        ledger = ImpactLedger(test_db)
        await ledger.apply_contribution_deltas({trees_impact: 250, people_impact: 40})
        await test_db.commit()

        assert await read_total(trees_impact) == 1250
        assert await read_total(people_impact) == 40

    async def test_zero_delta_is_noop(self, test_db, trees_impact, read_total):
        await ImpactLedger(test_db).apply_contribution_delta(trees_impact, 0)
        await test_db.commit()

        assert await read_total(trees_impact) == 1000

    async def test_delta_for_missing_impact_raises_integrity_error(self, test_db):
        with pytest.raises(LedgerIntegrityError) as exc_info:
            await ImpactLedger(test_db).apply_contribution_delta(404, 10)

        assert exc_info.value.status_code == 500
        assert exc_info.value.details["impact_id"] == 404

    def test_hidden_projects_still_count(self):
        assert project_counts_towards_totals(is_hidden=True) is True
        assert project_counts_towards_totals(is_hidden=False) is True
        assert project_counts_towards_totals(is_hidden=False, is_deleted=True) is False


class TestRecalculation:
    """Test rebuilding and auditing impact totals"""

    async def _corrupt(self, test_db, impact_id: int, value: int):
        await test_db.execute(
            update(Impact)
            .where(Impact.id == impact_id)
            .values(current_value=value)
            .execution_options(synchronize_session=False)
        )
        await test_db.commit()

    async def test_recalculate_consistent_data_changes_nothing(
        self, test_db, trees_impact, people_impact, make_project, read_total
    ):
        await make_project({trees_impact: 200, people_impact: 15})

        report = await ImpactLedger(test_db).recalculate()

        assert report.impacts_checked == 2
        assert report.impacts_corrected == 0
        assert report.corrections == []
        assert await read_total(trees_impact) == 1200
        assert await read_total(people_impact) == 15

    async def test_recalculate_repairs_drift(self, test_db, trees_impact, make_project, read_total):
        """Test a corrupted total is restored from starting value plus contributions"""
        await make_project({trees_impact: 200})
        await make_project({trees_impact: 300}, title="River Cleanup")
        await self._corrupt(test_db, trees_impact, 42)

        report = await ImpactLedger(test_db).recalculate()

        assert report.impacts_corrected == 1
        assert report.corrections[0].previous_value == 42
        assert report.corrections[0].recalculated_value == 1500
        assert await read_total(trees_impact) == 1500

    async def test_recalculate_is_idempotent(self, test_db, trees_impact, make_project, read_total):
        await make_project({trees_impact: 200})
        await self._corrupt(test_db, trees_impact, 0)
        ledger = ImpactLedger(test_db)

        await ledger.recalculate()
        second = await ledger.recalculate()

        assert second.impacts_corrected == 0
        assert await read_total(trees_impact) == 1200

    async def test_recalculate_ignores_deleted_projects(self, test_db, trees_impact, make_project, read_total):
        project_id = await make_project({trees_impact: 200})
        await make_project({trees_impact: 100}, title="River Cleanup")
        await ProjectComposer(test_db).delete_project(project_id)

        report = await ImpactLedger(test_db).recalculate()

        assert report.impacts_corrected == 0
        assert await read_total(trees_impact) == 1100

    async def test_recalculate_removes_orphaned_contributions(self, test_db, trees_impact, make_project):
        """Test contribution rows pointing at missing impacts are dropped"""
        project_id = await make_project({trees_impact: 200})
        test_db.add(ProjectImpact(project_id=project_id, impact_id=9999, contribution_value=5))
        await test_db.commit()

        report = await ImpactLedger(test_db).recalculate()

        assert report.orphaned_contributions_removed == 1
        remaining = (await test_db.execute(
            select(ProjectImpact.impact_id).where(ProjectImpact.project_id == project_id)
        )).scalars().all()
        assert remaining == [trees_impact]

    async def test_audit_reports_without_repairing(self, test_db, trees_impact, make_project, read_total):
        await make_project({trees_impact: 200})
        await self._corrupt(test_db, trees_impact, 7)

        report = await ImpactLedger(test_db).audit()

        assert report.consistent is False
        assert report.drift[0].impact_id == trees_impact
        assert report.drift[0].recalculated_value == 1200
        assert await read_total(trees_impact) == 7

    async def test_audit_consistent(self, test_db, trees_impact, make_project):
        await make_project({trees_impact: 200})

        report = await ImpactLedger(test_db).audit()

        assert report.consistent is True
        assert report.drift == []
