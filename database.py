# database.py - Database connection and schema definitions
from functools import lru_cache
from supabase import create_client, Client
from config import settings
import logging

logger = logging.getLogger(__name__)

@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Shared Supabase client, created on first use"""
    logger.info(f"Connecting to Supabase at {settings.SUPABASE_URL}")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SECRET)

def get_auth_client() -> Client:
    """
    Fresh client for sign-up/sign-in flows.

    Signing in stores the user session on the client, so these flows never
    touch the shared service client.
    """
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SECRET)

# Database Schema Documentation
"""
Table: profiles (one row per auth user, id = auth.users.id)
- id, email, full_name, first_name, last_name, phone, address, city, state,
  postal_code, avatar_url
- user_type (user | admin | tender)
- points (INTEGER DEFAULT 0), is_verified (BOOLEAN DEFAULT FALSE)
- created_at, updated_at, last_login_at

Table: issues
- id, user_id (reporter), title, description
- category (roads | utilities | environment | safety | parks | other)
- priority (low | medium | high | urgent)
- status (pending | in_progress | resolved)
- location_name, address, area, ward, latitude, longitude
- images (TEXT[]), tags (TEXT[]), metadata (JSONB)
- upvotes, downvotes, comments_count, views_count (recounted, never incremented
  by clients except views)
- assigned_department, assigned_to, estimated_resolution_date,
  actual_resolution_date
- created_at, updated_at, resolved_at

Table: issue_votes   - (issue_id, user_id) unique, vote_type (upvote | downvote)
Table: issue_comments - issue_id, user_id, content
Table: community_posts - user_id, title, content

Table: tenders
- id, posted_by, title, description, category, location, area, ward
- estimated_budget_min, estimated_budget_max (max >= min)
- deadline_date, submission_deadline, priority, requirements (TEXT[])
- status (available | closed | awarded | completed | cancelled)
- metadata (JSONB: source_issue_id, source_type)

Table: bids          - tender_id, user_id, amount, details, status
Table: feedback      - user_id (nullable), subject, message, rating
Table: notifications - user_id, title, message, type, related_id, is_read,
                       is_sent, read_at
Table: municipal_officials - name, designation, department, phone, email,
                             is_active
"""

# SQL Schema Creation Scripts
def create_tables_sql():
    """
    SQL scripts to create all tables.
    Run these in Supabase SQL Editor.
    """
    return """
    CREATE EXTENSION IF NOT EXISTS "uuid-ossp";

    -- Profiles Table
    CREATE TABLE IF NOT EXISTS profiles (
        id UUID PRIMARY KEY REFERENCES auth.users(id) ON DELETE CASCADE,
        email VARCHAR(255),
        full_name VARCHAR(200),
        first_name VARCHAR(100),
        last_name VARCHAR(100),
        phone VARCHAR(20),
        address TEXT,
        city VARCHAR(100),
        state VARCHAR(100),
        postal_code VARCHAR(20),
        avatar_url TEXT,
        user_type VARCHAR(20) DEFAULT 'user' CHECK (user_type IN ('user', 'admin', 'tender')),
        points INTEGER DEFAULT 0,
        is_verified BOOLEAN DEFAULT FALSE,
        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW(),
        last_login_at TIMESTAMPTZ
    );

    -- Issues Table
    CREATE TABLE IF NOT EXISTS issues (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        user_id UUID REFERENCES profiles(id) ON DELETE SET NULL,
        title VARCHAR(200) NOT NULL,
        description TEXT NOT NULL,
        category VARCHAR(30) NOT NULL,
        priority VARCHAR(20) DEFAULT 'medium',
        status VARCHAR(20) NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'in_progress', 'resolved')),

        location_name TEXT,
        address TEXT,
        area VARCHAR(100),
        ward VARCHAR(100),
        latitude DOUBLE PRECISION,
        longitude DOUBLE PRECISION,

        images TEXT[] DEFAULT '{}',
        tags TEXT[] DEFAULT '{}',
        metadata JSONB DEFAULT '{}',

        upvotes INTEGER DEFAULT 0,
        downvotes INTEGER DEFAULT 0,
        comments_count INTEGER DEFAULT 0,
        views_count INTEGER DEFAULT 0,

        assigned_department VARCHAR(100),
        assigned_to VARCHAR(200),
        estimated_resolution_date TIMESTAMPTZ,
        actual_resolution_date TIMESTAMPTZ,

        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW(),
        resolved_at TIMESTAMPTZ
    );

    -- Votes Table
    CREATE TABLE IF NOT EXISTS issue_votes (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        issue_id UUID REFERENCES issues(id) ON DELETE CASCADE,
        user_id UUID REFERENCES profiles(id) ON DELETE CASCADE,
        vote_type VARCHAR(10) CHECK (vote_type IN ('upvote', 'downvote')),
        created_at TIMESTAMPTZ DEFAULT NOW(),
        UNIQUE(issue_id, user_id)
    );

    -- Comments Table
    CREATE TABLE IF NOT EXISTS issue_comments (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        issue_id UUID REFERENCES issues(id) ON DELETE CASCADE,
        user_id UUID REFERENCES profiles(id) ON DELETE SET NULL,
        content TEXT NOT NULL,
        created_at TIMESTAMPTZ DEFAULT NOW()
    );

    -- Community Posts Table
    CREATE TABLE IF NOT EXISTS community_posts (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        user_id UUID REFERENCES profiles(id) ON DELETE CASCADE,
        title VARCHAR(200),
        content TEXT,
        created_at TIMESTAMPTZ DEFAULT NOW()
    );

    -- Tenders Table
    CREATE TABLE IF NOT EXISTS tenders (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        posted_by UUID REFERENCES profiles(id) ON DELETE SET NULL,
        title VARCHAR(200) NOT NULL,
        description TEXT,
        category VARCHAR(30),
        location TEXT,
        area VARCHAR(100),
        ward VARCHAR(100),
        estimated_budget_min NUMERIC,
        estimated_budget_max NUMERIC,
        deadline_date TIMESTAMPTZ,
        submission_deadline TIMESTAMPTZ,
        priority VARCHAR(20),
        requirements TEXT[] DEFAULT '{}',
        status VARCHAR(20) DEFAULT 'available',
        metadata JSONB DEFAULT '{}',
        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW(),
        CHECK (estimated_budget_max >= estimated_budget_min)
    );

    -- Bids Table
    CREATE TABLE IF NOT EXISTS bids (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        tender_id UUID REFERENCES tenders(id) ON DELETE CASCADE,
        user_id UUID REFERENCES profiles(id) ON DELETE CASCADE,
        amount NUMERIC NOT NULL,
        details TEXT,
        status VARCHAR(20) DEFAULT 'pending',
        created_at TIMESTAMPTZ DEFAULT NOW()
    );

    -- Feedback Table
    CREATE TABLE IF NOT EXISTS feedback (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        user_id UUID REFERENCES profiles(id) ON DELETE SET NULL,
        subject VARCHAR(200),
        message TEXT,
        rating INTEGER CHECK (rating >= 1 AND rating <= 5),
        created_at TIMESTAMPTZ DEFAULT NOW()
    );

    -- Notifications Table
    CREATE TABLE IF NOT EXISTS notifications (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        user_id UUID REFERENCES profiles(id) ON DELETE CASCADE,
        title VARCHAR(255),
        message TEXT,
        type VARCHAR(50),
        related_id UUID,
        is_read BOOLEAN DEFAULT FALSE,
        is_sent BOOLEAN DEFAULT FALSE,
        read_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ DEFAULT NOW()
    );

    -- Municipal Officials Table
    CREATE TABLE IF NOT EXISTS municipal_officials (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        name VARCHAR(200) NOT NULL,
        designation VARCHAR(200),
        department VARCHAR(100),
        phone VARCHAR(20),
        email VARCHAR(255),
        is_active BOOLEAN DEFAULT TRUE
    );

    -- View counter
    CREATE OR REPLACE FUNCTION increment_issue_views(issue_id UUID)
    RETURNS VOID AS $$
    BEGIN
        UPDATE issues SET views_count = COALESCE(views_count, 0) + 1 WHERE id = issue_id;
    END;
    $$ LANGUAGE plpgsql;

    -- Indexes
    CREATE INDEX IF NOT EXISTS idx_issues_status ON issues(status);
    CREATE INDEX IF NOT EXISTS idx_issues_user ON issues(user_id);
    CREATE INDEX IF NOT EXISTS idx_issues_created ON issues(created_at);
    CREATE INDEX IF NOT EXISTS idx_votes_issue ON issue_votes(issue_id);
    CREATE INDEX IF NOT EXISTS idx_profiles_points ON profiles(points DESC);
    CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, is_read);
    """

# Helper function to check if tables exist
def check_database_setup(client: Client) -> bool:
    """Check if database is properly set up"""
    try:
        client.table("profiles").select("id").limit(1).execute()
        logger.info("Database connection successful")
        return True
    except Exception as e:
        logger.error(f"Database setup check failed: {e}")
        logger.info("Please run the SQL scripts in Supabase SQL Editor")
        return False

if __name__ == "__main__":
    print("Database Schema SQL:")
    print(create_tables_sql())
    print("\n" + "="*80)
    print("Copy the above SQL and run it in your Supabase SQL Editor")
    print("="*80)
