"""
Workflow state machine.

Tracks the index of the active method in process.default_workflow.
States are 0..N; the workflow is complete once the index reaches N.
The index only moves through advance(), which the AdvanceToNextStep
command calls; time spent in a stage never advances it on its own.
"""

from typing import Optional

from .data_types import Process, Method
from .errors import MethodNotFoundError


class WorkflowStateMachine:
    """Stage progression over a process's default workflow"""

    def __init__(self, process: Process):
        self.process = process
        self.current_step_index: int = 0

    @property
    def is_complete(self) -> bool:
        return self.current_step_index >= len(self.process.default_workflow)

    @property
    def current_method_id(self) -> Optional[str]:
        """Active method id, or None once the workflow is complete"""
        if self.is_complete:
            return None
        return self.process.default_workflow[self.current_step_index]

    def current_method(self) -> Method:
        """
        Resolve the active method definition.

        Raises:
            MethodNotFoundError: If the workflow id has no matching method
                (also raised when called after completion)
        """
        method_id = self.current_method_id
        if method_id is None:
            raise MethodNotFoundError("<end of workflow>")

        method = self.process.find_method(method_id)
        if method is None:
            raise MethodNotFoundError(method_id)
        return method

    def advance(self) -> Optional[str]:
        """
        Move to the next stage.

        No check that the next stage exists; callers test is_complete.

        Returns:
            The new active method id, or None if the workflow is now complete
        """
        self.current_step_index += 1
        return self.current_method_id

    def validate(self):
        """
        Check that every workflow id resolves to a method.

        Raises:
            MethodNotFoundError: On the first unknown method id
        """
        for method_id in self.process.default_workflow:
            if self.process.find_method(method_id) is None:
                raise MethodNotFoundError(method_id)
