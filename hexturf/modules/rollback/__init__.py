from hexturf.modules.rollback.service import ROLLED_BACK_EVENT, RollbackResult, RollbackService

__all__ = ["ROLLED_BACK_EVENT", "RollbackResult", "RollbackService"]
