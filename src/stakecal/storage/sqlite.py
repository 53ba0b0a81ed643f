"""SQLite implementation of the StakeStore protocol."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import aiosqlite

from stakecal.errors import ConflictError
from stakecal.models.records import (
    ActivityRecord,
    Contact,
    EventDraft,
    InvitationToken,
    MeetingStake,
    PendingMeeting,
    StakeRecord,
    WalletEmailAssociation,
    canonical_email,
    canonical_wallet,
)
from stakecal.models.status import PendingStatus

SCHEMA = """
-- Meetings drafted by an organizer, before and after confirmation
CREATE TABLE IF NOT EXISTS pending_meetings (
    meeting_id TEXT PRIMARY KEY,
    organizer_wallet TEXT NOT NULL,
    organizer_email TEXT,
    summary TEXT NOT NULL,
    description TEXT,
    location TEXT,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    timezone TEXT NOT NULL DEFAULT 'UTC',
    attendees TEXT NOT NULL DEFAULT '[]',
    stake_amount TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    calendar_event_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_pending_organizer ON pending_meetings(organizer_wallet);

-- Initialized staking state, created by the first stake
CREATE TABLE IF NOT EXISTS meeting_stakes (
    meeting_id TEXT PRIMARY KEY,
    event_id TEXT NOT NULL DEFAULT '',
    organizer TEXT NOT NULL,
    required_stake TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    attendance_code TEXT,
    code_generated_at TEXT,
    is_settled INTEGER NOT NULL DEFAULT 0,
    settled_at TEXT,
    total_refunded TEXT,
    total_forfeited TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_meeting_stakes_organizer ON meeting_stakes(organizer);

-- One row per (meeting, wallet)
CREATE TABLE IF NOT EXISTS stakes (
    meeting_id TEXT NOT NULL REFERENCES meeting_stakes(meeting_id),
    wallet_address TEXT NOT NULL,
    email TEXT,
    amount TEXT NOT NULL,
    staked_at TEXT NOT NULL,
    has_checked_in INTEGER NOT NULL DEFAULT 0,
    check_in_time TEXT,
    is_refunded INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (meeting_id, wallet_address)
);
CREATE INDEX IF NOT EXISTS idx_stakes_wallet ON stakes(wallet_address);

-- Single-use invitation tokens
CREATE TABLE IF NOT EXISTS invitation_tokens (
    token TEXT PRIMARY KEY,
    meeting_id TEXT NOT NULL,
    email TEXT NOT NULL,
    used INTEGER NOT NULL DEFAULT 0,
    used_by_wallet TEXT,
    used_at TEXT,
    expires_at TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tokens_meeting ON invitation_tokens(meeting_id);

-- Wallet <-> email, learned from redeemed invitations
CREATE TABLE IF NOT EXISTS wallet_email_associations (
    wallet_address TEXT PRIMARY KEY,
    email TEXT NOT NULL,
    created_from_stake INTEGER NOT NULL DEFAULT 0,
    verified_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_assoc_email ON wallet_email_associations(email);

-- Address books of connected accounts
CREATE TABLE IF NOT EXISTS contacts (
    account_id TEXT NOT NULL,
    email TEXT NOT NULL,
    name TEXT,
    PRIMARY KEY (account_id, email)
);

-- Activity log
CREATE TABLE IF NOT EXISTS activity_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    meeting_id TEXT,
    wallet_address TEXT,
    amount TEXT,
    message TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_activity_created ON activity_log(created_at);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _iso(value: datetime | None) -> str | None:
    """Fixed-width UTC ISO string so stored timestamps compare as text."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _dt(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SQLiteStakeStore:
    """SQLite-backed implementation of the StakeStore protocol.

    All coroutines share one aiosqlite connection. Writes take ``_write_lock``
    so a commit never publishes another coroutine's half-finished statements.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        if self._db is not None:
            return
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._write_lock:
            try:
                yield self.db
            except BaseException:
                await self.db.rollback()
                raise
            else:
                await self.db.commit()

    # ── Pending meetings ───────────────────────────────────

    async def save_pending_meeting(self, meeting: PendingMeeting) -> None:
        now = _now()
        meeting.created_at = meeting.created_at or now
        meeting.updated_at = now
        event = meeting.event
        async with self._transaction() as db:
            await db.execute(
                "INSERT INTO pending_meetings"
                " (meeting_id, organizer_wallet, organizer_email, summary, description,"
                "  location, start_time, end_time, timezone, attendees, stake_amount,"
                "  status, calendar_event_id, created_at, updated_at)"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    meeting.meeting_id, canonical_wallet(meeting.organizer_wallet),
                    meeting.organizer_email, event.summary, event.description,
                    event.location, _iso(event.start_time), _iso(event.end_time),
                    event.timezone, json.dumps(event.attendees), str(meeting.stake_amount),
                    meeting.status.value, meeting.calendar_event_id,
                    meeting.created_at, meeting.updated_at,
                ),
            )

    async def get_pending_meeting(self, meeting_id: str) -> PendingMeeting | None:
        async with self.db.execute(
            "SELECT * FROM pending_meetings WHERE meeting_id=?", (meeting_id,)
        ) as cur:
            row = await cur.fetchone()
            return _row_to_pending(row) if row else None

    async def get_pending_meetings_by_organizer(
        self, organizer_wallet: str
    ) -> list[PendingMeeting]:
        async with self.db.execute(
            "SELECT * FROM pending_meetings WHERE organizer_wallet=? ORDER BY start_time",
            (canonical_wallet(organizer_wallet),),
        ) as cur:
            return [_row_to_pending(row) async for row in cur]

    async def compare_and_set_pending_status(
        self, meeting_id: str, expected: PendingStatus, new: PendingStatus
    ) -> bool:
        async with self._transaction() as db:
            cur = await db.execute(
                "UPDATE pending_meetings SET status=?, updated_at=?"
                " WHERE meeting_id=? AND status=?",
                (new.value, _now(), meeting_id, expected.value),
            )
            return cur.rowcount > 0

    async def set_calendar_event_id(self, meeting_id: str, event_id: str) -> None:
        async with self._transaction() as db:
            await db.execute(
                "UPDATE pending_meetings SET calendar_event_id=?, updated_at=?"
                " WHERE meeting_id=?",
                (event_id, _now(), meeting_id),
            )
            await db.execute(
                "UPDATE meeting_stakes SET event_id=? WHERE meeting_id=?",
                (event_id, meeting_id),
            )

    # ── Meeting stakes ─────────────────────────────────────

    async def create_meeting_stake(self, meeting: MeetingStake) -> bool:
        async with self._transaction() as db:
            cur = await db.execute(
                "INSERT OR IGNORE INTO meeting_stakes"
                " (meeting_id, event_id, organizer, required_stake, start_time,"
                "  end_time, created_at)"
                " VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    meeting.meeting_id, meeting.event_id or "",
                    canonical_wallet(meeting.organizer), str(meeting.required_stake),
                    _iso(meeting.start_time), _iso(meeting.end_time), _now(),
                ),
            )
            return cur.rowcount > 0

    async def get_meeting_stake(self, meeting_id: str) -> MeetingStake | None:
        async with self.db.execute(
            "SELECT * FROM meeting_stakes WHERE meeting_id=?", (meeting_id,)
        ) as cur:
            row = await cur.fetchone()
            if row is None:
                return None
            meeting = _row_to_meeting(row)
        meeting.stakes = await self._get_stakes(meeting_id)
        return meeting

    async def get_meeting_stakes_for_wallet(self, wallet_address: str) -> list[MeetingStake]:
        wallet = canonical_wallet(wallet_address)
        async with self.db.execute(
            "SELECT meeting_id FROM meeting_stakes WHERE organizer=?"
            " OR meeting_id IN (SELECT meeting_id FROM stakes WHERE wallet_address=?)"
            " ORDER BY start_time",
            (wallet, wallet),
        ) as cur:
            ids = [row["meeting_id"] async for row in cur]
        meetings = []
        for meeting_id in ids:
            meeting = await self.get_meeting_stake(meeting_id)
            if meeting is not None:
                meetings.append(meeting)
        return meetings

    async def set_attendance_code(
        self, meeting_id: str, code: str, generated_at: datetime
    ) -> bool:
        async with self._transaction() as db:
            cur = await db.execute(
                "UPDATE meeting_stakes SET attendance_code=?, code_generated_at=?"
                " WHERE meeting_id=? AND is_settled=0",
                (code, _iso(generated_at), meeting_id),
            )
            return cur.rowcount > 0

    # ── Stakes ─────────────────────────────────────────────

    async def _get_stakes(self, meeting_id: str) -> list[StakeRecord]:
        async with self.db.execute(
            "SELECT * FROM stakes WHERE meeting_id=? ORDER BY staked_at, rowid",
            (meeting_id,),
        ) as cur:
            return [_row_to_stake(row) async for row in cur]

    async def insert_stake(self, stake: StakeRecord) -> None:
        try:
            async with self._transaction() as db:
                await _insert_stake_row(db, stake)
        except aiosqlite.IntegrityError as exc:
            raise ConflictError("Already staked for this meeting") from exc

    async def insert_stake_with_token(
        self, stake: StakeRecord, token: str, now: datetime
    ) -> InvitationToken | None:
        wallet = canonical_wallet(stake.wallet_address)
        stamp = _iso(now)
        try:
            async with self._transaction() as db:
                redeemed = await _redeem_token(db, token, wallet, stamp, stake.meeting_id)
                if redeemed is None:
                    return None
                stake.email = redeemed.email
                await _insert_stake_row(db, stake)
                await _associate(db, wallet, redeemed.email, stamp)
                return redeemed
        except aiosqlite.IntegrityError as exc:
            raise ConflictError("Already staked for this meeting") from exc

    async def get_stake(self, meeting_id: str, wallet_address: str) -> StakeRecord | None:
        async with self.db.execute(
            "SELECT * FROM stakes WHERE meeting_id=? AND wallet_address=?",
            (meeting_id, canonical_wallet(wallet_address)),
        ) as cur:
            row = await cur.fetchone()
            return _row_to_stake(row) if row else None

    async def mark_checked_in(
        self, meeting_id: str, wallet_address: str, check_in_time: datetime
    ) -> bool:
        async with self._transaction() as db:
            cur = await db.execute(
                "UPDATE stakes SET has_checked_in=1, check_in_time=?"
                " WHERE meeting_id=? AND wallet_address=?"
                " AND EXISTS (SELECT 1 FROM meeting_stakes m"
                "             WHERE m.meeting_id=stakes.meeting_id AND m.is_settled=0)",
                (_iso(check_in_time), meeting_id, canonical_wallet(wallet_address)),
            )
            return cur.rowcount > 0

    async def settle_meeting(self, meeting_id: str, settled_at: datetime) -> bool:
        async with self._transaction() as db:
            cur = await db.execute(
                "UPDATE meeting_stakes SET is_settled=1, settled_at=?"
                " WHERE meeting_id=? AND is_settled=0",
                (_iso(settled_at), meeting_id),
            )
            if cur.rowcount == 0:
                return False
            await db.execute(
                "UPDATE stakes SET is_refunded=1"
                " WHERE meeting_id=? AND has_checked_in=1 AND is_refunded=0",
                (meeting_id,),
            )
            refunded = forfeited = Decimal("0")
            async with db.execute(
                "SELECT amount, has_checked_in FROM stakes WHERE meeting_id=?",
                (meeting_id,),
            ) as rows:
                async for row in rows:
                    if row["has_checked_in"]:
                        refunded += Decimal(row["amount"])
                    else:
                        forfeited += Decimal(row["amount"])
            await db.execute(
                "UPDATE meeting_stakes SET total_refunded=?, total_forfeited=?"
                " WHERE meeting_id=?",
                (str(refunded), str(forfeited), meeting_id),
            )
            return True

    # ── Invitation tokens ──────────────────────────────────

    async def save_invitation_tokens(self, tokens: list[InvitationToken]) -> None:
        now = _now()
        async with self._transaction() as db:
            await db.executemany(
                "INSERT INTO invitation_tokens"
                " (token, meeting_id, email, expires_at, created_at)"
                " VALUES (?, ?, ?, ?, ?)",
                [
                    (
                        t.token, t.meeting_id, canonical_email(t.email),
                        _iso(t.expires_at), t.created_at or now,
                    )
                    for t in tokens
                ],
            )

    async def get_invitation_token(self, token: str) -> InvitationToken | None:
        async with self.db.execute(
            "SELECT * FROM invitation_tokens WHERE token=?", (token,)
        ) as cur:
            row = await cur.fetchone()
            return _row_to_token(row) if row else None

    async def get_tokens_for_meeting(self, meeting_id: str) -> list[InvitationToken]:
        async with self.db.execute(
            "SELECT * FROM invitation_tokens WHERE meeting_id=? ORDER BY created_at, email",
            (meeting_id,),
        ) as cur:
            return [_row_to_token(row) async for row in cur]

    async def redeem_invitation_token(
        self, token: str, wallet_address: str, now: datetime
    ) -> InvitationToken | None:
        wallet = canonical_wallet(wallet_address)
        stamp = _iso(now)
        async with self._transaction() as db:
            redeemed = await _redeem_token(db, token, wallet, stamp)
            if redeemed is not None:
                await _associate(db, wallet, redeemed.email, stamp)
            return redeemed
    # ── Wallet/email associations ──────────────────────────

    async def get_association_by_wallet(
        self, wallet_address: str
    ) -> WalletEmailAssociation | None:
        async with self.db.execute(
            "SELECT * FROM wallet_email_associations WHERE wallet_address=?",
            (canonical_wallet(wallet_address),),
        ) as cur:
            row = await cur.fetchone()
            return _row_to_association(row) if row else None

    async def get_associations_by_email(self, email: str) -> list[WalletEmailAssociation]:
        async with self.db.execute(
            "SELECT * FROM wallet_email_associations WHERE email=? ORDER BY created_at",
            (canonical_email(email),),
        ) as cur:
            return [_row_to_association(row) async for row in cur]

    # ── Contacts ───────────────────────────────────────────

    async def save_contacts(self, account_id: str, contacts: list[Contact]) -> int:
        rows = [
            (account_id, canonical_email(c.email), c.name)
            for c in contacts
            if c.email and c.email.strip()
        ]
        async with self._transaction() as db:
            await db.executemany(
                "INSERT INTO contacts (account_id, email, name) VALUES (?, ?, ?)"
                " ON CONFLICT(account_id, email) DO UPDATE SET"
                " name=COALESCE(excluded.name, contacts.name)",
                rows,
            )
        return len(rows)

    async def get_contacts(self, account_id: str) -> list[Contact]:
        async with self.db.execute(
            "SELECT * FROM contacts WHERE account_id=? ORDER BY email", (account_id,)
        ) as cur:
            return [
                Contact(account_id=row["account_id"], email=row["email"], name=row["name"])
                async for row in cur
            ]

    async def clear_contacts(self, account_id: str) -> None:
        async with self._transaction() as db:
            await db.execute("DELETE FROM contacts WHERE account_id=?", (account_id,))

    # ── Activity log ───────────────────────────────────────

    async def log_activity(
        self,
        event_type: str,
        message: str,
        meeting_id: str | None = None,
        wallet_address: str | None = None,
        amount: str | None = None,
    ) -> None:
        async with self._transaction() as db:
            await db.execute(
                "INSERT INTO activity_log"
                " (event_type, meeting_id, wallet_address, amount, message, created_at)"
                " VALUES (?, ?, ?, ?, ?, ?)",
                (event_type, meeting_id, wallet_address, amount, message, _now()),
            )

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        async with self.db.execute(
            "SELECT * FROM activity_log ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        ) as cur:
            return [
                ActivityRecord(
                    id=row["id"],
                    event_type=row["event_type"],
                    meeting_id=row["meeting_id"],
                    wallet_address=row["wallet_address"],
                    amount=row["amount"],
                    message=row["message"],
                    created_at=row["created_at"],
                )
                async for row in cur
            ]


# ── Multi-statement write steps (run inside _transaction) ──


async def _insert_stake_row(db: aiosqlite.Connection, stake: StakeRecord) -> None:
    """Insert a stake unless its meeting is settled. Raises IntegrityError on duplicates."""
    cur = await db.execute(
        "INSERT INTO stakes"
        " (meeting_id, wallet_address, email, amount, staked_at)"
        " SELECT ?, ?, ?, ?, ?"
        " WHERE EXISTS (SELECT 1 FROM meeting_stakes WHERE meeting_id=? AND is_settled=0)",
        (
            stake.meeting_id, canonical_wallet(stake.wallet_address),
            stake.email, str(stake.amount), _iso(stake.staked_at), stake.meeting_id,
        ),
    )
    if cur.rowcount == 0:
        raise ConflictError("Meeting has already been settled")


async def _redeem_token(
    db: aiosqlite.Connection,
    token: str,
    wallet: str,
    stamp: str,
    meeting_id: str | None = None,
) -> InvitationToken | None:
    sql = (
        "UPDATE invitation_tokens SET used=1, used_by_wallet=?, used_at=?"
        " WHERE token=? AND used=0 AND expires_at > ?"
    )
    params: tuple = (wallet, stamp, token, stamp)
    if meeting_id is not None:
        sql += " AND meeting_id=?"
        params += (meeting_id,)
    cur = await db.execute(sql, params)
    if cur.rowcount == 0:
        return None
    async with db.execute("SELECT * FROM invitation_tokens WHERE token=?", (token,)) as rows:
        return _row_to_token(await rows.fetchone())


async def _associate(db: aiosqlite.Connection, wallet: str, email: str, stamp: str) -> None:
    await db.execute(
        "INSERT INTO wallet_email_associations"
        " (wallet_address, email, created_from_stake, verified_at,"
        "  created_at, updated_at)"
        " VALUES (?, ?, 1, ?, ?, ?)"
        " ON CONFLICT(wallet_address) DO UPDATE SET"
        " email=excluded.email, created_from_stake=1,"
        " verified_at=excluded.verified_at, updated_at=excluded.updated_at",
        (wallet, email, stamp, stamp, stamp),
    )


# ── Row converters ─────────────────────────────────────────


def _row_to_pending(row: aiosqlite.Row) -> PendingMeeting:
    return PendingMeeting(
        meeting_id=row["meeting_id"],
        organizer_wallet=row["organizer_wallet"],
        organizer_email=row["organizer_email"],
        event=EventDraft(
            summary=row["summary"],
            start_time=_dt(row["start_time"]),
            end_time=_dt(row["end_time"]),
            attendees=json.loads(row["attendees"]),
            description=row["description"],
            location=row["location"],
            timezone=row["timezone"],
        ),
        stake_amount=Decimal(row["stake_amount"]),
        status=PendingStatus(row["status"]),
        calendar_event_id=row["calendar_event_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_meeting(row: aiosqlite.Row) -> MeetingStake:
    return MeetingStake(
        meeting_id=row["meeting_id"],
        event_id=row["event_id"],
        organizer=row["organizer"],
        required_stake=Decimal(row["required_stake"]),
        start_time=_dt(row["start_time"]),
        end_time=_dt(row["end_time"]),
        attendance_code=row["attendance_code"],
        code_generated_at=_dt(row["code_generated_at"]),
        is_settled=bool(row["is_settled"]),
        settled_at=_dt(row["settled_at"]),
        total_refunded=Decimal(row["total_refunded"]) if row["total_refunded"] else None,
        total_forfeited=Decimal(row["total_forfeited"]) if row["total_forfeited"] else None,
    )


def _row_to_stake(row: aiosqlite.Row) -> StakeRecord:
    return StakeRecord(
        meeting_id=row["meeting_id"],
        wallet_address=row["wallet_address"],
        email=row["email"],
        amount=Decimal(row["amount"]),
        staked_at=_dt(row["staked_at"]),
        has_checked_in=bool(row["has_checked_in"]),
        check_in_time=_dt(row["check_in_time"]),
        is_refunded=bool(row["is_refunded"]),
    )


def _row_to_token(row: aiosqlite.Row) -> InvitationToken:
    return InvitationToken(
        token=row["token"],
        meeting_id=row["meeting_id"],
        email=row["email"],
        expires_at=_dt(row["expires_at"]),
        used=bool(row["used"]),
        used_by_wallet=row["used_by_wallet"],
        used_at=_dt(row["used_at"]),
        created_at=row["created_at"],
    )


def _row_to_association(row: aiosqlite.Row) -> WalletEmailAssociation:
    return WalletEmailAssociation(
        wallet_address=row["wallet_address"],
        email=row["email"],
        created_from_stake=bool(row["created_from_stake"]),
        verified_at=row["verified_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
