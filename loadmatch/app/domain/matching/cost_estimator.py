"""
Cost Estimator (Domain Logic).

Estimates what hauling a candidate load would cost the carrier: driver
pay under the driver's pay mode plus fuel.
"""

import math

from loadmatch.app.core.config import settings
from loadmatch.app.domain.matching.pay_config import (
    DriverPayConfig,
    PerMilePay,
    PerCuftPay,
    PerMileAndCuftPay,
    PercentOfRevenuePay,
    FlatDailyPay,
    UnknownPay,
)
from loadmatch.app.domain.matching.types import CostBreakdown, CostEstimate

# Per-mile driver pay assumed when the pay mode is unknown
FALLBACK_RATE_PER_MILE = 0.50


class CostEstimator:

    @staticmethod
    def estimate(
        pay_config: DriverPayConfig,
        total_miles: float,
        cubic_feet: float,
        revenue: float,
        estimated_days: int,
        fuel_cost_per_mile: float = None,
    ) -> CostEstimate:
        """
        Estimate driver and fuel cost for a load.
        
        Only the term matching the driver's pay mode is non-zero, except
        per_mile_and_cuft which adds the mileage and volume terms.
        All money is rounded to cents.
        """
        if fuel_cost_per_mile is None:
            fuel_cost_per_mile = settings.default_fuel_cost_per_mile
        
        mileage_pay = 0.0
        cuft_pay = 0.0
        revenue_share_pay = 0.0
        daily_pay = 0.0
        fallback_pay = 0.0
        
        if isinstance(pay_config, PerMilePay):
            mileage_pay = total_miles * pay_config.rate_per_mile
        elif isinstance(pay_config, PerCuftPay):
            cuft_pay = cubic_feet * pay_config.rate_per_cuft
        elif isinstance(pay_config, PerMileAndCuftPay):
            mileage_pay = total_miles * pay_config.rate_per_mile
            cuft_pay = cubic_feet * pay_config.rate_per_cuft
        elif isinstance(pay_config, PercentOfRevenuePay):
            revenue_share_pay = revenue * (pay_config.percent_of_revenue / 100)
        elif isinstance(pay_config, FlatDailyPay):
            daily_pay = estimated_days * pay_config.flat_daily_rate
        elif isinstance(pay_config, UnknownPay):
            fallback_pay = total_miles * FALLBACK_RATE_PER_MILE
        else:
            raise TypeError(f"Unsupported pay config: {type(pay_config).__name__}")
        
        driver_cost = mileage_pay + cuft_pay + revenue_share_pay + daily_pay + fallback_pay
        fuel_cost = total_miles * fuel_cost_per_mile
        
        return CostEstimate(
            driver_cost=round(driver_cost, 2),
            fuel_cost=round(fuel_cost, 2),
            total_cost=round(driver_cost + fuel_cost, 2),
            breakdown=CostBreakdown(
                mileage_pay=round(mileage_pay, 2),
                cuft_pay=round(cuft_pay, 2),
                revenue_share_pay=round(revenue_share_pay, 2),
                daily_pay=round(daily_pay, 2),
                fallback_pay=round(fallback_pay, 2),
                fuel_cost=round(fuel_cost, 2),
            ),
        )

    @staticmethod
    def estimate_days_for_load(total_miles: float, avg_miles_per_day: float = None) -> int:
        """Whole driving days for a distance, never less than one."""
        if avg_miles_per_day is None:
            avg_miles_per_day = settings.avg_miles_per_day
        return max(1, math.ceil(total_miles / avg_miles_per_day))

    @staticmethod
    def calculate_profit_margin(revenue: float, total_cost: float) -> float:
        """Profit as a percentage of revenue (0 when there is no revenue)."""
        if revenue == 0:
            return 0
        return round(((revenue - total_cost) / revenue) * 100, 2)
