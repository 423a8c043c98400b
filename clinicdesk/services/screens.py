# screen registry — live boards, ledgers and queues per (employee, branch)
# screens outlive single requests so that marking flows and pollers survive between calls

import logging
from typing import Optional

from clinicdesk.models.session import Session
from clinicdesk.services.api_client import ClinicApi, api
from clinicdesk.services.approvals import ApprovalQueue
from clinicdesk.services.board import AttendanceBoard
from clinicdesk.services.ledger import LedgerScreen

logger = logging.getLogger(__name__)

ScreenKey = tuple[int, int]


class ScreenRegistry:
    def __init__(self, api: ClinicApi, poll_seconds: Optional[float] = None):
        self.api = api
        self.poll_seconds = poll_seconds
        self.boards: dict[ScreenKey, AttendanceBoard] = {}
        self.ledgers: dict[ScreenKey, LedgerScreen] = {}
        self.queues: dict[ScreenKey, ApprovalQueue] = {}

    @staticmethod
    def _key(session: Session) -> ScreenKey:
        return (session.employee_id, session.branch_id)

    def board(self, session: Session) -> AttendanceBoard:
        key = self._key(session)
        if key not in self.boards:
            board = AttendanceBoard(session, self.api, poll_seconds=self.poll_seconds)
            board.start_polling()
            self.boards[key] = board
            logger.info(f"Opened attendance board for employee {key[0]} at branch {key[1]}")
        return self.boards[key]

    def ledger(self, session: Session) -> LedgerScreen:
        key = self._key(session)
        if key not in self.ledgers:
            self.ledgers[key] = LedgerScreen(self.api, session.branch_id)
        return self.ledgers[key]

    def queue(self, session: Session) -> ApprovalQueue:
        key = self._key(session)
        if key not in self.queues:
            self.queues[key] = ApprovalQueue(session, self.api)
        return self.queues[key]

    async def close_board(self, session: Session) -> bool:
        """stop the board's poller and forget it; false when none was open"""
        board = self.boards.pop(self._key(session), None)
        if board is None:
            return False
        await board.close()
        logger.info(f"Closed attendance board for employee {session.employee_id} at branch {session.branch_id}")
        return True

    async def close_ledger(self, session: Session) -> bool:
        return self.ledgers.pop(self._key(session), None) is not None

    async def close_queue(self, session: Session) -> bool:
        return self.queues.pop(self._key(session), None) is not None

    async def close_all(self):
        for board in self.boards.values():
            await board.close()
        self.boards.clear()
        self.ledgers.clear()
        self.queues.clear()
        logger.info("All screens closed")


# singleton instance
screens = ScreenRegistry(api)


async def get_screens() -> ScreenRegistry:
    """dependency injection for screen access"""
    return screens
