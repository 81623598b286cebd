"""Initialize review-bot in a repository."""

import json
from pathlib import Path
from typing import Optional

from ..engine import DEFAULT_RULES
from ..tools.storage_tool import RULES_FILE


WORKFLOW_TEMPLATE = '''name: Code Review Bot

on:
  pull_request:
    types: [opened, synchronize, reopened]

permissions:
  contents: read
  pull-requests: write

jobs:
  review:
    name: Code Review
    runs-on: ubuntu-latest

    steps:
      - uses: actions/checkout@v4

      - uses: actions/setup-python@v5
        with:
          python-version: "3.11"

      - name: Install review-bot
        run: pip install code-review-bot

      - name: Run review
        env:
          GITHUB_TOKEN: ${{ secrets.GITHUB_TOKEN }}
        run: |
          review-bot review \\
            --repo "${{ github.repository }}" \\
            --pr-number "${{ github.event.pull_request.number }}" \\
            --data-dir {data_dir}
'''


def init_repository(target_dir: Optional[Path] = None, data_dir: str = ".review-bot") -> bool:
    """
    Initialize review-bot in a repository.

    Creates:
      - .github/workflows/code-review.yml
      - <data_dir>/coding-standards.json (built-in rules, ready to edit)
    """
    target = target_dir or Path.cwd()

    # Check if git repo
    if not (target / ".git").exists():
        print(f"Error: {target} is not a git repository")
        return False

    created_files = []

    workflow_dir = target / ".github" / "workflows"
    workflow_dir.mkdir(parents=True, exist_ok=True)

    workflow_file = workflow_dir / "code-review.yml"
    if workflow_file.exists():
        print(f"Already exists: {workflow_file}")
    else:
        workflow_file.write_text(WORKFLOW_TEMPLATE.replace("{data_dir}", data_dir))
        print(f"Created: {workflow_file}")
        created_files.append(workflow_file)

    rules_file = target / data_dir / RULES_FILE
    if rules_file.exists():
        print(f"Already exists: {rules_file}")
    else:
        rules_file.parent.mkdir(parents=True, exist_ok=True)
        rules_file.write_text(json.dumps([rule.to_dict() for rule in DEFAULT_RULES], indent=2))
        print(f"Created: {rules_file}")
        created_files.append(rules_file)

    if created_files:
        print("\nNext steps:")
        print(f"  1. Edit {rules_file} to match your coding standards")
        print("  2. git add . && git commit -m 'Add code review bot'")
        print("  3. git push")
    else:
        print("\nAlready configured. No changes needed.")

    return True
