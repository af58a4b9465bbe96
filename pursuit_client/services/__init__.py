"""Session services: binding, reconciliation and action submission.

These hold the consistency rules of the client. Transport and persistence
concerns stay in the modules one level up.
"""
from .binder import BinderState, SessionBinder
from .pipeline import ActionPipeline
from .reconciler import RoomReconciler

__all__ = ['ActionPipeline', 'BinderState', 'RoomReconciler', 'SessionBinder']
