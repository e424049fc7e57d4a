"""Centralized configuration for the Fund Circle engine.

This module contains the business rule constants and default values used
across the services. Keep magic numbers here rather than in the services.
"""

# =============================================================================
# LOAN ACCOUNTING
# =============================================================================

# Portion of every loan that is repaid through installments (70%)
RECOVERABLE_RATIO = 0.7

# Portion of every loan that is permanently waived (30%)
WAIVER_RATIO = 0.3

# Currency precision (cents)
CURRENCY_PLACES = 2

# When True the last installment absorbs the per-installment rounding
# remainder. Off by default: every installment carries the same amount.
RECONCILE_LAST_INSTALLMENT = False

# Minimum loan term in months
MIN_LOAN_TERM = 1

# Maximum loan term in months
MAX_LOAN_TERM = 60

# =============================================================================
# MEMBERSHIP
# =============================================================================

# Admin signups skip the approval queue. Anyone can pick the ADMIN role
# at signup, so deployments with open registration should turn this off.
AUTO_APPROVE_ADMIN_SIGNUPS = True

# =============================================================================
# PERSISTENCE
# =============================================================================

# Default sqlite database file
DEFAULT_DB_NAME = "fund_circle.db"

# Attempts (including the first) for writes hitting transient failures
PERSISTENCE_MAX_ATTEMPTS = 3

# Seconds to wait between attempts
PERSISTENCE_RETRY_DELAY = 0.05

# Settings key holding the logged-in user's id
SESSION_SETTING_KEY = "fund_app_session"

# =============================================================================
# BACKUP & REPORTS
# =============================================================================

# Date format used in file names
DATE_FORMAT_STORAGE = "%Y-%m-%d"

BACKUP_FILENAME_FORMAT = "fund_backup_{date}.json"

REPORT_FILENAME_FORMAT = "fund_portfolio_{date}.xlsx"

# =============================================================================
# IMAGES
# =============================================================================

# Image formats accepted for deposit receipts and avatars (Pillow names)
ALLOWED_IMAGE_FORMATS = ("JPEG", "PNG", "GIF", "WEBP")

# Avatars are thumbnailed to fit this box
AVATAR_SIZE = (256, 256)
