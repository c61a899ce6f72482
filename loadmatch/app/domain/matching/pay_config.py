"""
Driver pay configurations.

One class per pay mode, plus UnknownPay for drivers whose mode is unset
or not recognised. Costing for UnknownPay is a conservative flat
per-mile estimate (see CostEstimator).
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel

from loadmatch.app.models.matching_enums import PayMode


class PerMilePay(BaseModel):
    pay_mode: Literal["per_mile"] = "per_mile"
    rate_per_mile: float = 0.0


class PerCuftPay(BaseModel):
    pay_mode: Literal["per_cuft"] = "per_cuft"
    rate_per_cuft: float = 0.0


class PerMileAndCuftPay(BaseModel):
    pay_mode: Literal["per_mile_and_cuft"] = "per_mile_and_cuft"
    rate_per_mile: float = 0.0
    rate_per_cuft: float = 0.0


class PercentOfRevenuePay(BaseModel):
    pay_mode: Literal["percent_of_revenue"] = "percent_of_revenue"
    percent_of_revenue: float = 0.0


class FlatDailyPay(BaseModel):
    pay_mode: Literal["flat_daily_rate"] = "flat_daily_rate"
    flat_daily_rate: float = 0.0


class UnknownPay(BaseModel):
    """Mode missing or unrecognised; keeps the raw value for diagnostics."""
    pay_mode: Optional[str] = None


DriverPayConfig = Union[
    PerMilePay, PerCuftPay, PerMileAndCuftPay, PercentOfRevenuePay, FlatDailyPay, UnknownPay
]


def pay_config_from_driver(driver) -> DriverPayConfig:
    """
    Snapshot a driver's pay settings.
    
    Rate fields that are null count as zero. A missing driver or pay mode
    yields UnknownPay.
    """
    if driver is None:
        return UnknownPay()
    
    try:
        mode = PayMode(driver.pay_mode)
    except ValueError:
        return UnknownPay(pay_mode=driver.pay_mode)
    
    per_mile = driver.rate_per_mile or 0.0
    per_cuft = driver.rate_per_cuft or 0.0
    
    if mode == PayMode.PER_MILE:
        return PerMilePay(rate_per_mile=per_mile)
    if mode == PayMode.PER_CUFT:
        return PerCuftPay(rate_per_cuft=per_cuft)
    if mode == PayMode.PER_MILE_AND_CUFT:
        return PerMileAndCuftPay(rate_per_mile=per_mile, rate_per_cuft=per_cuft)
    if mode == PayMode.PERCENT_OF_REVENUE:
        return PercentOfRevenuePay(percent_of_revenue=driver.percent_of_revenue or 0.0)
    return FlatDailyPay(flat_daily_rate=driver.flat_daily_rate or 0.0)
