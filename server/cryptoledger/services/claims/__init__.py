from .aggregation import ClaimAggregationService
from .merger import merge_token_claims, reduce_token_details, total_of

__all__ = ["ClaimAggregationService", "merge_token_claims", "reduce_token_details", "total_of"]
