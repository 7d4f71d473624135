"""
sql_queries.py
--------------

Centralized SQL for the DuckDB store.

All statements are constants imported by the repositories. Large on-chain
integers (ids, amounts, on-chain timestamps) are VARCHAR holding exact
decimal strings; ledger numbers and event indexes fit BIGINT. Timestamps are
naive UTC.
"""

# =====================================================================
# SCHEMA
# =====================================================================

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS indexed_events (
        contract_id      VARCHAR   NOT NULL,
        ledger           BIGINT    NOT NULL,
        tx_hash          VARCHAR   NOT NULL,
        event_index      BIGINT    NOT NULL,
        topic            VARCHAR   NOT NULL,
        ledger_closed_at TIMESTAMP NOT NULL,
        raw_payload      VARCHAR   NOT NULL,
        decoded_payload  VARCHAR,
        decode_status    VARCHAR   NOT NULL,
        decode_error     VARCHAR,
        created_at       TIMESTAMP NOT NULL,
        PRIMARY KEY (contract_id, ledger, tx_hash, event_index)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS checkpoints (
        contract_id      VARCHAR   PRIMARY KEY,
        last_ledger      BIGINT    NOT NULL,
        last_tx_hash     VARCHAR   NOT NULL,
        last_event_index BIGINT    NOT NULL,
        updated_at       TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS trades (
        contract_id      VARCHAR   NOT NULL,
        trade_id         VARCHAR   NOT NULL,
        trader           VARCHAR   NOT NULL,
        pair             VARCHAR   NOT NULL,
        amount           VARCHAR   NOT NULL,
        price            VARCHAR   NOT NULL,
        is_buy           BOOLEAN   NOT NULL,
        fee_amount       VARCHAR   NOT NULL,
        fee_token        VARCHAR   NOT NULL,
        "timestamp"      VARCHAR   NOT NULL,
        ledger           BIGINT    NOT NULL,
        tx_hash          VARCHAR   NOT NULL,
        event_index      BIGINT    NOT NULL,
        ledger_closed_at TIMESTAMP NOT NULL,
        PRIMARY KEY (contract_id, trade_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS proposals (
        contract_id         VARCHAR   NOT NULL,
        proposal_id         VARCHAR   NOT NULL,
        proposer            VARCHAR   NOT NULL,
        new_contract_hash   VARCHAR   NOT NULL,
        target_contract     VARCHAR   NOT NULL,
        description         VARCHAR   NOT NULL,
        approval_threshold  BIGINT    NOT NULL,
        timelock_delay      VARCHAR   NOT NULL,
        status              VARCHAR   NOT NULL,
        current_approvals   BIGINT    NOT NULL,
        created_at          VARCHAR   NOT NULL,
        created_ledger      BIGINT    NOT NULL,
        created_tx_hash     VARCHAR   NOT NULL,
        created_event_index BIGINT    NOT NULL,
        last_ledger         BIGINT    NOT NULL,
        last_tx_hash        VARCHAR   NOT NULL,
        last_event_index    BIGINT    NOT NULL,
        closed_by           VARCHAR,
        closed_at           VARCHAR,
        updated_at          TIMESTAMP NOT NULL,
        PRIMARY KEY (contract_id, proposal_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS proposal_approvals (
        contract_id       VARCHAR NOT NULL,
        proposal_id       VARCHAR NOT NULL,
        ledger            BIGINT  NOT NULL,
        tx_hash           VARCHAR NOT NULL,
        event_index       BIGINT  NOT NULL,
        approver          VARCHAR NOT NULL,
        current_approvals BIGINT  NOT NULL,
        threshold         BIGINT  NOT NULL,
        "timestamp"       VARCHAR NOT NULL,
        PRIMARY KEY (contract_id, proposal_id, ledger, tx_hash, event_index)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rewards (
        contract_id       VARCHAR   NOT NULL,
        reward_id         VARCHAR   NOT NULL,
        "user"            VARCHAR   NOT NULL,
        amount            VARCHAR   NOT NULL,
        reward_type       VARCHAR   NOT NULL,
        reason            VARCHAR   NOT NULL,
        granted_by        VARCHAR   NOT NULL,
        granted_at        VARCHAR   NOT NULL,
        ledger            BIGINT    NOT NULL,
        tx_hash           VARCHAR   NOT NULL,
        event_index       BIGINT    NOT NULL,
        claimed           BOOLEAN   NOT NULL,
        claimed_amount    VARCHAR,
        claimed_at        VARCHAR,
        claim_ledger      BIGINT,
        claim_tx_hash     VARCHAR,
        claim_event_index BIGINT,
        ledger_closed_at  TIMESTAMP NOT NULL,
        PRIMARY KEY (contract_id, reward_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS grants (
        contract_id        VARCHAR   NOT NULL,
        grant_id           VARCHAR   NOT NULL,
        beneficiary        VARCHAR   NOT NULL,
        amount             VARCHAR   NOT NULL,
        start_time         VARCHAR   NOT NULL,
        cliff              VARCHAR   NOT NULL,
        duration           VARCHAR   NOT NULL,
        granted_at         VARCHAR   NOT NULL,
        granted_by         VARCHAR   NOT NULL,
        ledger             BIGINT    NOT NULL,
        tx_hash            VARCHAR   NOT NULL,
        event_index        BIGINT    NOT NULL,
        status             VARCHAR   NOT NULL,
        claimed_amount     VARCHAR   NOT NULL,
        revoked_at         VARCHAR,
        revoked_by         VARCHAR,
        revoke_ledger      BIGINT,
        revoke_tx_hash     VARCHAR,
        revoke_event_index BIGINT,
        updated_at         TIMESTAMP NOT NULL,
        PRIMARY KEY (contract_id, grant_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS grant_claims (
        contract_id VARCHAR NOT NULL,
        grant_id    VARCHAR NOT NULL,
        ledger      BIGINT  NOT NULL,
        tx_hash     VARCHAR NOT NULL,
        event_index BIGINT  NOT NULL,
        beneficiary VARCHAR NOT NULL,
        amount      VARCHAR NOT NULL,
        claimed_at  VARCHAR NOT NULL,
        PRIMARY KEY (contract_id, grant_id, ledger, tx_hash, event_index)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS event_errors (
        contract_id VARCHAR NOT NULL,
        ledger      BIGINT  NOT NULL,
        tx_hash     VARCHAR NOT NULL,
        event_index BIGINT  NOT NULL,
        topic       VARCHAR NOT NULL,
        kind        VARCHAR NOT NULL,
        entity_key  VARCHAR NOT NULL,
        message     VARCHAR NOT NULL,
        PRIMARY KEY (contract_id, ledger, tx_hash, event_index)
    )
    """,
)

# Tables rebuilt from the event log; order matters only for readability.
DERIVED_TABLES: tuple[str, ...] = (
    "trades",
    "proposals",
    "proposal_approvals",
    "rewards",
    "grants",
    "grant_claims",
    "event_errors",
)

# Deterministic ordering used by snapshots, exports and replay comparison.
TABLE_ORDER_BY: dict[str, str] = {
    "trades": "contract_id, trade_id",
    "proposals": "contract_id, proposal_id",
    "proposal_approvals": "contract_id, proposal_id, ledger, tx_hash, event_index",
    "rewards": "contract_id, reward_id",
    "grants": "contract_id, grant_id",
    "grant_claims": "contract_id, grant_id, ledger, tx_hash, event_index",
    "event_errors": "contract_id, ledger, tx_hash, event_index",
    "indexed_events": "contract_id, ledger, tx_hash, event_index",
    "checkpoints": "contract_id",
}


# =====================================================================
# INDEXED EVENTS
# =====================================================================

INSERT_EVENT = """
INSERT INTO indexed_events (
    contract_id, ledger, tx_hash, event_index, topic, ledger_closed_at,
    raw_payload, decoded_payload, decode_status, decode_error, created_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_EVENT_COLUMNS = """
    contract_id, ledger, tx_hash, event_index, topic, ledger_closed_at,
    raw_payload, decoded_payload, decode_status, decode_error, created_at
"""

SELECT_EVENT = f"""
SELECT {_EVENT_COLUMNS}
FROM indexed_events
WHERE contract_id = ? AND ledger = ? AND tx_hash = ? AND event_index = ?
"""

SELECT_EVENTS_ALL = f"""
SELECT {_EVENT_COLUMNS}
FROM indexed_events
ORDER BY contract_id, ledger, tx_hash, event_index
"""

SELECT_EVENTS_FOR_CONTRACT = f"""
SELECT {_EVENT_COLUMNS}
FROM indexed_events
WHERE contract_id = ?
ORDER BY ledger, tx_hash, event_index
"""

SELECT_EVENTS_BY_STATUS = f"""
SELECT {_EVENT_COLUMNS}
FROM indexed_events
WHERE decode_status = ?
ORDER BY contract_id, ledger, tx_hash, event_index
"""


# =====================================================================
# CHECKPOINTS
# =====================================================================

SELECT_CHECKPOINT = """
SELECT last_ledger, last_tx_hash, last_event_index
FROM checkpoints
WHERE contract_id = ?
"""

SELECT_CHECKPOINTS = """
SELECT contract_id, last_ledger, last_tx_hash, last_event_index
FROM checkpoints
ORDER BY contract_id
"""

INSERT_CHECKPOINT = """
INSERT INTO checkpoints (contract_id, last_ledger, last_tx_hash, last_event_index, updated_at)
VALUES (?, ?, ?, ?, ?)
"""

UPDATE_CHECKPOINT = """
UPDATE checkpoints
SET last_ledger = ?, last_tx_hash = ?, last_event_index = ?, updated_at = ?
WHERE contract_id = ?
"""


# =====================================================================
# TRADES
# =====================================================================

SELECT_TRADE = """
SELECT contract_id, trade_id, trader, pair, amount, price, is_buy, fee_amount, fee_token,
       "timestamp", ledger, tx_hash, event_index, ledger_closed_at
FROM trades
WHERE contract_id = ? AND trade_id = ?
"""

INSERT_TRADE = """
INSERT INTO trades (
    contract_id, trade_id, trader, pair, amount, price, is_buy, fee_amount, fee_token,
    "timestamp", ledger, tx_hash, event_index, ledger_closed_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


# =====================================================================
# PROPOSALS
# =====================================================================

_PROPOSAL_COLUMNS = """
    contract_id, proposal_id, proposer, new_contract_hash, target_contract, description,
    approval_threshold, timelock_delay, status, current_approvals, created_at,
    created_ledger, created_tx_hash, created_event_index,
    last_ledger, last_tx_hash, last_event_index,
    closed_by, closed_at, updated_at
"""

SELECT_PROPOSAL = f"""
SELECT {_PROPOSAL_COLUMNS}
FROM proposals
WHERE contract_id = ? AND proposal_id = ?
"""

INSERT_PROPOSAL = f"""
INSERT INTO proposals ({_PROPOSAL_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

UPDATE_PROPOSAL = """
UPDATE proposals
SET status = ?, current_approvals = ?,
    last_ledger = ?, last_tx_hash = ?, last_event_index = ?,
    closed_by = ?, closed_at = ?, updated_at = ?
WHERE contract_id = ? AND proposal_id = ?
"""

SELECT_APPROVAL = """
SELECT contract_id, proposal_id, ledger, tx_hash, event_index, approver,
       current_approvals, threshold, "timestamp"
FROM proposal_approvals
WHERE contract_id = ? AND proposal_id = ? AND ledger = ? AND tx_hash = ? AND event_index = ?
"""

INSERT_APPROVAL = """
INSERT INTO proposal_approvals (
    contract_id, proposal_id, ledger, tx_hash, event_index, approver,
    current_approvals, threshold, "timestamp"
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


# =====================================================================
# REWARDS
# =====================================================================

_REWARD_COLUMNS = """
    contract_id, reward_id, "user", amount, reward_type, reason, granted_by, granted_at,
    ledger, tx_hash, event_index, claimed, claimed_amount, claimed_at,
    claim_ledger, claim_tx_hash, claim_event_index, ledger_closed_at
"""

SELECT_REWARD = f"""
SELECT {_REWARD_COLUMNS}
FROM rewards
WHERE contract_id = ? AND reward_id = ?
"""

INSERT_REWARD = f"""
INSERT INTO rewards ({_REWARD_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

UPDATE_REWARD_CLAIM = """
UPDATE rewards
SET claimed = ?, claimed_amount = ?, claimed_at = ?,
    claim_ledger = ?, claim_tx_hash = ?, claim_event_index = ?, ledger_closed_at = ?
WHERE contract_id = ? AND reward_id = ?
"""


# =====================================================================
# GRANTS
# =====================================================================

_GRANT_COLUMNS = """
    contract_id, grant_id, beneficiary, amount, start_time, cliff, duration, granted_at,
    granted_by, ledger, tx_hash, event_index, status, claimed_amount,
    revoked_at, revoked_by, revoke_ledger, revoke_tx_hash, revoke_event_index, updated_at
"""

SELECT_GRANT = f"""
SELECT {_GRANT_COLUMNS}
FROM grants
WHERE contract_id = ? AND grant_id = ?
"""

INSERT_GRANT = f"""
INSERT INTO grants ({_GRANT_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

UPDATE_GRANT = """
UPDATE grants
SET status = ?, claimed_amount = ?, revoked_at = ?, revoked_by = ?,
    revoke_ledger = ?, revoke_tx_hash = ?, revoke_event_index = ?, updated_at = ?
WHERE contract_id = ? AND grant_id = ?
"""

SELECT_GRANT_CLAIM = """
SELECT contract_id, grant_id, ledger, tx_hash, event_index, beneficiary, amount, claimed_at
FROM grant_claims
WHERE contract_id = ? AND grant_id = ? AND ledger = ? AND tx_hash = ? AND event_index = ?
"""

INSERT_GRANT_CLAIM = """
INSERT INTO grant_claims (
    contract_id, grant_id, ledger, tx_hash, event_index, beneficiary, amount, claimed_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""


# =====================================================================
# EVENT ERRORS
# =====================================================================

INSERT_EVENT_ERROR = """
INSERT INTO event_errors (
    contract_id, ledger, tx_hash, event_index, topic, kind, entity_key, message
) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""

SELECT_EVENT_ERRORS = """
SELECT contract_id, ledger, tx_hash, event_index, topic, kind, entity_key, message
FROM event_errors
ORDER BY contract_id, ledger, tx_hash, event_index
"""


# =====================================================================
# READ-ONLY CONSUMERS (queries.py / export.py)
# =====================================================================

# Formatted with a table from TABLE_ORDER_BY only; never with user input.
SELECT_TABLE_ORDERED = "SELECT * FROM {table} ORDER BY {order_by}"

FETCH_TRADES_QUERY = """
SELECT *
FROM trades
WHERE ($1::VARCHAR IS NULL OR contract_id = $1)
  AND ($2::VARCHAR IS NULL OR trader = $2)
ORDER BY contract_id, ledger, tx_hash, event_index
"""

FETCH_PROPOSALS_QUERY = """
SELECT *
FROM proposals
WHERE ($1::VARCHAR IS NULL OR contract_id = $1)
  AND ($2::VARCHAR IS NULL OR status = $2)
ORDER BY contract_id, created_ledger, created_tx_hash, created_event_index
"""

FETCH_APPROVALS_QUERY = """
SELECT *
FROM proposal_approvals
WHERE contract_id = $1 AND proposal_id = $2
ORDER BY ledger, tx_hash, event_index
"""

FETCH_REWARDS_QUERY = """
SELECT *
FROM rewards
WHERE ($1::VARCHAR IS NULL OR contract_id = $1)
  AND ($2::VARCHAR IS NULL OR "user" = $2)
ORDER BY contract_id, ledger, tx_hash, event_index
"""

FETCH_GRANTS_QUERY = """
SELECT *
FROM grants
WHERE ($1::VARCHAR IS NULL OR contract_id = $1)
  AND ($2::VARCHAR IS NULL OR beneficiary = $2)
ORDER BY contract_id, ledger, tx_hash, event_index
"""

FETCH_GRANT_CLAIMS_QUERY = """
SELECT *
FROM grant_claims
WHERE contract_id = $1 AND grant_id = $2
ORDER BY ledger, tx_hash, event_index
"""

FETCH_CHECKPOINTS_QUERY = """
SELECT contract_id, last_ledger, last_tx_hash, last_event_index, updated_at
FROM checkpoints
ORDER BY contract_id
"""

FETCH_EVENT_ERRORS_QUERY = """
SELECT *
FROM event_errors
WHERE ($1::VARCHAR IS NULL OR contract_id = $1)
ORDER BY contract_id, ledger, tx_hash, event_index
"""

FETCH_FAILED_EVENTS_QUERY = """
SELECT contract_id, ledger, tx_hash, event_index, topic, raw_payload, decode_error
FROM indexed_events
WHERE decode_status = 'failed'
  AND ($1::VARCHAR IS NULL OR contract_id = $1)
ORDER BY contract_id, ledger, tx_hash, event_index
"""

EVENT_STATUS_SUMMARY_QUERY = """
SELECT contract_id, decode_status, count(*) AS events
FROM indexed_events
GROUP BY contract_id, decode_status
ORDER BY contract_id, decode_status
"""
