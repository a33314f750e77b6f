#!/usr/bin/env python3
"""
Check the waitlist tables for data that the signup flow should never produce.

Reports duplicate waitlist positions, duplicate referral codes, gaps in the
position sequence, and referral counts that disagree with the recorded
referral edges. Exits with status 1 when anything is found.

Usage:
    python check_waitlist_integrity.py [--fix-counts] [--page-size N]

Examples:
    # Report only
    python check_waitlist_integrity.py

    # Rewrite referral_count from the referral edges
    python check_waitlist_integrity.py --fix-counts
"""

import sys
import os
import argparse
from collections import Counter

# Add parent directory to path to import services
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from services import data_store
from services.applicant import utc_now_iso


def find_problems(users, referrals):
    """
    Inspect user rows and referral edges.

    Returns a dict of problem lists plus `count_mismatches`, a list of
    (user_id, stored_count, edge_count) tuples.
    """
    positions = Counter(u.get('waitlist_position') for u in users)
    codes = Counter(u.get('referral_code') for u in users)
    edges = Counter(r.get('referrer_id') for r in referrals)

    duplicate_positions = sorted(p for p, n in positions.items() if p is not None and n > 1)
    duplicate_codes = sorted(c for c, n in codes.items() if c and n > 1)

    taken = {p for p in positions if isinstance(p, int)}
    highest = max(taken) if taken else 0
    gaps = [p for p in range(1, highest + 1) if p not in taken]

    count_mismatches = []
    for user in users:
        stored = user.get('referral_count') or 0
        actual = edges.get(user['id'], 0)
        if stored != actual:
            count_mismatches.append((user['id'], stored, actual))

    return {
        'duplicate_positions': duplicate_positions,
        'duplicate_codes': duplicate_codes,
        'position_gaps': gaps,
        'count_mismatches': count_mismatches,
    }


def fetch_all(store, table, columns, page_size=1000):
    """Read every row of a table in id order, one page at a time.

    Stops on an empty page and advances by the rows actually returned, so a
    server-side max-rows cap below page_size still yields the whole table.
    """
    rows = []
    while True:
        page = store.select(table, columns=columns, order='id', limit=page_size, offset=len(rows))
        if not page:
            return rows
        rows.extend(page)


def fix_referral_counts(count_mismatches, store):
    for user_id, _stored, actual in count_mismatches:
        store.update('users', user_id, {'referral_count': actual, 'updated_at': utc_now_iso()})
    return len(count_mismatches)


def main(argv=None):
    parser = argparse.ArgumentParser(description='Check waitlist data integrity')
    parser.add_argument('--fix-counts', action='store_true',
                        help='Rewrite referral_count from recorded referral edges')
    parser.add_argument('--page-size', type=int, default=1000,
                        help='Rows per request when reading users and referrals (default: 1000)')

    args = parser.parse_args(argv)

    store = data_store.get_data_store()
    print("Loading users and referrals...")
    users = fetch_all(store, 'users', 'id, referral_code, waitlist_position, referral_count',
                      page_size=args.page_size)
    referrals = fetch_all(store, 'referrals', 'id, referrer_id, referee_id', page_size=args.page_size)
    print(f"Found {len(users)} user(s) and {len(referrals)} referral edge(s).")

    problems = find_problems(users, referrals)

    if problems['duplicate_positions']:
        print(f"  ✗ Duplicate waitlist positions: {problems['duplicate_positions']}")
    if problems['duplicate_codes']:
        print(f"  ✗ Duplicate referral codes: {problems['duplicate_codes']}")
    if problems['position_gaps']:
        print(f"  ⚠ Gaps in waitlist positions: {problems['position_gaps']}")
    for user_id, stored, actual in problems['count_mismatches']:
        print(f"  ⚠ User {user_id}: referral_count={stored}, referral edges={actual}")

    if args.fix_counts and problems['count_mismatches']:
        fixed = fix_referral_counts(problems['count_mismatches'], store)
        print(f"  ✓ Rewrote referral_count for {fixed} user(s)")
        problems['count_mismatches'] = []

    total = sum(len(v) for v in problems.values())
    print(f"\n{'='*60}")
    print(f"Summary:")
    print(f"  Problems found: {total}")
    print(f"{'='*60}")
    return 1 if total else 0


if __name__ == '__main__':
    sys.exit(main())
