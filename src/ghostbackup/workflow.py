"""
GitHub Actions workflow that prunes old backup refs.

Backup slots are overwritten in place, so the remote only ever holds the
latest snapshot per user and branch. Slots for abandoned branches stay
around forever unless something deletes them; this workflow does.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_CRON = "0 2 * * 0"
DEFAULT_RETENTION_DAYS = 30
WORKFLOW_FILE = "ghost-backup-prune.yml"

CRON_DESCRIPTIONS = {
    "0 2 * * 0": "Weekly at 2am on Sunday",
    "0 2 * * *": "Daily at 2am",
    "0 */6 * * *": "Every 6 hours",
    "0 0 1 * *": "Monthly on the 1st at midnight",
    "0 2 * * 1": "Weekly at 2am on Monday",
}

_TEMPLATE = """\
name: Prune Ghost Backup Refs

on:
  schedule:
    # {description}
    - cron: '{cron}'
  workflow_dispatch:
    inputs:
      retention_days:
        description: 'Number of days to keep backups'
        required: false
        default: '{retention}'
        type: number

jobs:
  prune-backups:
    runs-on: ubuntu-latest

    steps:
      - name: Checkout repository
        uses: actions/checkout@v4
        with:
          fetch-depth: 0

      - name: Configure Git
        run: |
          git config user.name "github-actions[bot]"
          git config user.email "github-actions[bot]@users.noreply.github.com"

      - name: Prune old backup refs
        env:
          RETENTION_DAYS: ${{{{ inputs.retention_days || {retention} }}}}
        run: |
          set -e

          echo "Pruning backup refs older than $RETENTION_DAYS days..."
          CUTOFF_DATE=$(date -d "$RETENTION_DAYS days ago" +%s)
          echo "Cutoff date: $(date -d "@$CUTOFF_DATE")"

          git fetch origin '+refs/backups/*:refs/backups/*' || true

          TOTAL_REFS=$(git for-each-ref --format='%(refname)' refs/backups/ | wc -l)
          echo "Total backup refs: $TOTAL_REFS"

          if [ "$TOTAL_REFS" -eq 0 ]; then
            echo "No backup refs found"
            exit 0
          fi

          DELETED_COUNT=0
          while read ref timestamp; do
            if [ "$timestamp" -lt "$CUTOFF_DATE" ]; then
              echo "Deleting old ref: $ref ($(date -d "@$timestamp"))"
              git update-ref -d "$ref" || true
              git push origin --delete "$ref" 2>/dev/null || echo "Warning: Failed to delete $ref from remote"
              DELETED_COUNT=$((DELETED_COUNT + 1))
            else
              echo "Keeping ref: $ref ($(date -d "@$timestamp"))"
            fi
          done < <(git for-each-ref --format='%(refname) %(creatordate:unix)' refs/backups/)

          echo ""
          echo "Summary:"
          echo "  Total refs: $TOTAL_REFS"
          echo "  Deleted: $DELETED_COUNT"
          echo "  Remaining: $((TOTAL_REFS - DELETED_COUNT))"

      - name: Summary
        run: |
          echo "### Ghost Backup Cleanup Complete" >> $GITHUB_STEP_SUMMARY
          echo "" >> $GITHUB_STEP_SUMMARY
          echo "- **Retention Period**: ${{{{ inputs.retention_days || {retention} }}}} days" >> $GITHUB_STEP_SUMMARY
"""


def describe_cron(cron: str) -> str:
    """Human-readable description for common cron schedules."""
    return CRON_DESCRIPTIONS.get(cron.strip(), "Custom schedule")


def generate_workflow_yaml(
    cron: str = DEFAULT_CRON,
    retention_days: int = DEFAULT_RETENTION_DAYS,
) -> str:
    """Render the prune workflow.

    Raises:
        ValueError: If ``retention_days`` is not positive.
    """
    if retention_days <= 0:
        raise ValueError("retention_days must be positive")
    return _TEMPLATE.format(
        description=describe_cron(cron), cron=cron, retention=retention_days,
    )


def write_workflow(
    repo_path: Path,
    cron: str = DEFAULT_CRON,
    retention_days: int = DEFAULT_RETENTION_DAYS,
) -> Path:
    """Write the workflow into ``.github/workflows`` of a repository."""
    workflow_dir = Path(repo_path) / ".github" / "workflows"
    workflow_dir.mkdir(parents=True, exist_ok=True)
    path = workflow_dir / WORKFLOW_FILE
    path.write_text(generate_workflow_yaml(cron, retention_days), encoding="utf-8")
    return path
