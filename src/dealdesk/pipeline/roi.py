"""ROI calculator and saved scenarios."""

from __future__ import annotations

import structlog
from pydantic import BaseModel, Field

from src.dealdesk.errors import WriteFailedError
from src.dealdesk.pipeline.base import PipelineService
from src.dealdesk.records.schemas import Collection, RoiScenario

logger = structlog.get_logger(__name__)

HOURS_PER_YEAR = 2080
WEEKS_PER_YEAR = 52


class RoiInputs(BaseModel):
    team_size: int = Field(default=0, ge=0)
    avg_salary: float = Field(default=0.0, ge=0)
    hours_per_week: float = Field(default=0.0, ge=0)
    current_output: float = Field(default=0.0, ge=0)
    time_reduction: float = Field(default=0.0, ge=0, le=100, description="Percent of hours saved")
    output_increase: float = Field(default=0.0, ge=0, description="Percent output gain")
    cost_reduction: float = Field(default=0.0, ge=0, description="Annual direct savings")
    implementation_cost: float = Field(default=0.0, ge=0)


class RoiResults(BaseModel):
    hours_reclaimed: float
    labor_savings: float
    output_gain: float
    total_annual_benefit: float
    payback_months: float | None = None
    three_year_roi: float | None = None

    def formatted(self) -> dict[str, str]:
        """Display strings as stored on a saved scenario."""
        return {
            "time_reclaimed": f"{self.hours_reclaimed:,.0f} hours",
            "labor_savings": f"${self.labor_savings:,.0f}",
            "output_gain": f"{self.output_gain:,.0f} units/month",
            "total_benefit": f"${self.total_annual_benefit:,.0f}",
            "payback_period": (
                "n/a" if self.payback_months is None else f"{self.payback_months:.1f} months"
            ),
            "three_year_roi": (
                "n/a" if self.three_year_roi is None else f"{self.three_year_roi:.0f}%"
            ),
        }


def calculate_roi(inputs: RoiInputs) -> RoiResults:
    """Annual labor savings, payback period, and three-year ROI.

    Payback and ROI are None when their denominators (monthly benefit,
    implementation cost) are zero.
    """
    hourly_rate = inputs.avg_salary / HOURS_PER_YEAR
    hours_per_person = inputs.hours_per_week * WEEKS_PER_YEAR * (inputs.time_reduction / 100)
    hours_reclaimed = hours_per_person * inputs.team_size
    labor_savings = hours_reclaimed * hourly_rate
    output_gain = inputs.current_output * (inputs.output_increase / 100)
    total_benefit = labor_savings + inputs.cost_reduction

    payback = None
    if total_benefit > 0:
        payback = inputs.implementation_cost / (total_benefit / 12)
    three_year = None
    if inputs.implementation_cost > 0:
        three_year = (total_benefit * 3 - inputs.implementation_cost) / inputs.implementation_cost * 100

    return RoiResults(
        hours_reclaimed=hours_reclaimed,
        labor_savings=labor_savings,
        output_gain=output_gain,
        total_annual_benefit=total_benefit,
        payback_months=payback,
        three_year_roi=three_year,
    )


class RoiService(PipelineService):
    async def save_scenario(self, inputs: RoiInputs, name: str | None = None) -> RoiScenario:
        """Store inputs and formatted results for the active deal."""
        deal = self._require_deal()
        results = calculate_roi(inputs)
        scenario = await self._cache.create(
            Collection.ROI_SCENARIOS,
            RoiScenario(
                deal_id=deal.id,
                name=name,
                results=results.formatted(),
                **inputs.model_dump(),
            ),
        )
        if scenario is None:
            raise WriteFailedError("Save ROI scenario")

        self._refresh_views("scenarios")
        logger.info("roi.scenario_saved", scenario_id=scenario.id, deal_id=deal.id)
        return scenario
