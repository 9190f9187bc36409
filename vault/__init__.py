"""DayVault core library: stores, gate, streaks and the save orchestrator.

Public API re-exports for convenient imports:
    from vault import Journal, EntryStore, project_status, ...
"""

# Workspace & paths
from vault.workspace import (
    workspace_root,
    get_user_timezone,
    load_policy,
    today_str,
    now_local,
    vault_dir,
    entries_dir,
    photos_dir,
    cards_dir,
    meta_path,
    profile_path,
    hooks_config_path,
    lock_path,
)

# File I/O
from vault.fileio import (
    read_text,
    read_json,
    read_yaml,
    write_json_atomic,
    write_bytes_atomic,
    write_json_exclusive,
    file_lock,
)

# Errors
from vault.errors import (
    VaultError,
    ValidationError,
    GateDenied,
    DuplicateDate,
    CooldownActive,
    BackfillExhausted,
    StorageFailure,
)

# Models
from vault.models import (
    MOODS,
    DEFAULT_MOOD,
    Mood,
    find_mood,
    Policy,
    MemoryEntry,
    GatingState,
    GateStatus,
    StreakSummary,
    SaveResult,
)

# Stores
from vault.entries import EntryStore
from vault.meta import MetaStore, load_gating_state, qualifying_values

# Engine
from vault.gating import (
    Admission,
    evaluate,
    project_status,
    cooldown_active,
    cooldown_remaining,
    is_backfill,
)
from vault.streak import (
    chain,
    active_streak,
    longest_run,
    heal,
    advance,
    summarize,
)

# Presentation helpers
from vault.timeline import (
    build_timeline,
    mood_counts,
    pretty_date,
    month_label,
    format_countdown,
    streak_line,
    status_hint,
)
from vault.card import render_card, write_card
from vault.hooks import fire_save_hooks, load_hooks, run_hooks

# Orchestrator
from vault.journal import APP_VERSION, Journal
