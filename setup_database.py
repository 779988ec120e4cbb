#!/usr/bin/env python3
"""
Database Setup Script for JanConnect
Prints the Supabase schema, or checks an existing project with --check
"""

import sys

from database import create_tables_sql, check_database_setup, get_supabase

def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv

    if "--check" in argv:
        ok = check_database_setup(get_supabase())
        print("Schema found" if ok else "Schema missing - run the SQL below first")
        return 0 if ok else 1

    print("=" * 80)
    print("JanConnect Database Setup")
    print("=" * 80)
    print()
    print("Copy the SQL below and paste it into your Supabase SQL Editor:")
    print()
    print(create_tables_sql())
    print()
    print("=" * 80)
    print("After running the SQL:")
    print("1. Create a public storage bucket named in SUPABASE_BUCKET_NAME")
    print("2. Enable row level security policies for profiles and issues")
    print("3. Re-run this script with --check to verify the connection")
    print("=" * 80)
    return 0

if __name__ == "__main__":
    sys.exit(main())
