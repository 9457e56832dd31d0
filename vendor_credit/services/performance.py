"""Vendor performance analysis and applying its credit-limit recommendations"""

import logging
from datetime import datetime
from typing import Optional

from vendor_credit.domain.exceptions import NotFoundError, ValidationError
from vendor_credit.domain.models import PerformanceTier, Recommendation
from vendor_credit.domain.performance import analyze_vendor_performance
from vendor_credit.infrastructure.database.models import VendorCreditAccount
from vendor_credit.infrastructure.database.repositories import VendorAccountRepository
from vendor_credit.infrastructure.database.session import SessionFactory, SessionLocal, session_scope
from vendor_credit.schemas import AccountChange, BulkAnalysisResult, PerformanceAnalysisSchema
from vendor_credit.services.accounts import VendorAccountService, require_authorization

logger = logging.getLogger(__name__)

MIN_REPAYMENTS_FOR_BULK = 3


def _analyze(account: VendorCreditAccount) -> PerformanceAnalysisSchema:
    analysis = analyze_vendor_performance(
        vendor_id=account.id,
        credit_limit_cents=account.credit_limit_cents,
        credit_used_cents=account.credit_used_cents,
        history=account.credit_history(),
        performance_tier=PerformanceTier(account.performance_tier),
    )
    return PerformanceAnalysisSchema.from_analysis(analysis)


class PerformanceService:
    """Read-only recommendations; applying one goes through the authorized limit edit"""

    def __init__(
        self,
        session_factory: SessionFactory = SessionLocal,
        accounts: Optional[VendorAccountService] = None,
    ):
        self.session_factory = session_factory
        self.accounts = accounts if accounts is not None else VendorAccountService(session_factory)

    def analyze_vendor_performance(self, vendor_id: str) -> PerformanceAnalysisSchema:
        with session_scope(self.session_factory) as db:
            account = VendorAccountRepository(db).get(vendor_id)
            if account is None:
                raise NotFoundError("vendor_credit_account", vendor_id)
            return _analyze(account)

    def bulk_analyze_vendors(self, min_repayments: int = MIN_REPAYMENTS_FOR_BULK) -> BulkAnalysisResult:
        """Analyze every active vendor with enough history, grouped by recommendation"""
        with session_scope(self.session_factory) as db:
            analyses = [_analyze(a) for a in VendorAccountRepository(db).list_active(min_repayments=min_repayments)]

        result = BulkAnalysisResult(total_analyzed=len(analyses), increase=[], maintain=[], decrease=[])
        for analysis in analyses:
            getattr(result, analysis.recommendation).append(analysis)

        logger.info(
            "Bulk vendor analysis completed",
            extra={
                "total_analyzed": result.total_analyzed,
                "increase": len(result.increase),
                "maintain": len(result.maintain),
                "decrease": len(result.decrease),
            },
        )
        return result

    def apply_performance_recommendation(
        self,
        vendor_id: str,
        actor: str,
        reason: str,
        as_of: datetime,
    ) -> AccountChange:
        """
        Re-run the analysis and apply its suggested limit.

        The analysis is recomputed here rather than trusted from the caller, and
        the new limit still has to pass the usual limit-edit checks.
        """
        require_authorization(actor, reason)
        analysis = self.analyze_vendor_performance(vendor_id)
        if (
            analysis.recommendation == Recommendation.MAINTAIN.value
            or analysis.suggested_new_limit_cents == analysis.current_limit_cents
        ):
            raise ValidationError(
                f"No credit limit change recommended for vendor {vendor_id}",
                {"vendor_id": vendor_id, "recommendation": analysis.recommendation},
            )

        return self.accounts.adjust_credit_limit(
            vendor_id,
            analysis.suggested_new_limit_cents,
            actor,
            reason,
            as_of,
            source="recommendation",
        )
