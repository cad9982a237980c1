from dataclasses import dataclass, replace
from typing import Optional, Tuple

from .domain import Affiliate
from .ftypes import Maybe, first
from .pricing import canonical_code, percent_of


@dataclass(frozen=True)
class ReferralResult:
    affiliates: Tuple[Affiliate, ...]
    commission: int = 0
    affiliate_name: str = ""
    affiliate: Optional[Affiliate] = None


def find_affiliate(code: Optional[str], affiliates: Tuple[Affiliate, ...]) -> Maybe[Affiliate]:
    """Партнёр по каноническому коду (без учёта активности)"""
    wanted = canonical_code(code)
    if not wanted:
        return Maybe.nothing()
    return first(lambda a: canonical_code(a.code) == wanted, affiliates)


def commission_for(amount: int, affiliate: Affiliate) -> int:
    return percent_of(amount, affiliate.commission_rate)


def apply_referral(
    amount: int, referral_code: Optional[str], affiliates: Tuple[Affiliate, ...]
) -> ReferralResult:
    """
    Начисляет комиссию партнёру по реферальному коду.
    Коллекция заменяется целиком: меняется только запись партнёра, остальные
    объекты остаются теми же. Без кода, без совпадения или для неактивного
    партнёра возвращается исходный кортеж и нулевая комиссия.
    """
    found = find_affiliate(referral_code, affiliates).filter(lambda a: a.is_active)
    if found.is_none():
        return ReferralResult(affiliates=affiliates)

    affiliate = found.get_or_else(None)
    commission = commission_for(amount, affiliate)
    credited = replace(affiliate, total_earnings=affiliate.total_earnings + commission)

    updated = tuple(credited if a.id == affiliate.id else a for a in affiliates)
    return ReferralResult(
        affiliates=updated,
        commission=commission,
        affiliate_name=affiliate.name,
        affiliate=credited,
    )
