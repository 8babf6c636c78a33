from tradelink.flow.claim_flow import ClaimFlowController, FlowTransitionError, reduce

__all__ = ["ClaimFlowController", "FlowTransitionError", "reduce"]
