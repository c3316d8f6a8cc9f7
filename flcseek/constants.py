# flcseek/constants.py
from enum import Enum


class Role(str, Enum):
    SUPERADMIN = "superadmin"
    LEADPASTOR = "leadpastor"
    ADMIN      = "admin"
    LEADER     = "leader"


# Roles that see every group; everyone else is scoped to their own group.
CHURCH_WIDE_ROLES = {Role.SUPERADMIN, Role.LEADPASTOR}

# How many weeks of attendance the weekly chart covers unless overridden.
DEFAULT_WEEKLY_STATS_WEEKS = 12

EXPORT_TYPES = ("converts", "progress", "attendance", "all")

# Default discipleship catalog: (stage_number, stage_name, short_name, description)
DEFAULT_MILESTONES = [
    (1,  "Registered as Church Member",          "Registered",       "Has registered as a church member."),
    (2,  "Visited (First Quarter)",              "First Visit",      "Has been visited within the first quarter of the sheep seeking year."),
    (3,  "Visited (Second Quarter)",             "Second Visit",     "Has been visited within the second quarter of the sheep seeking year."),
    (4,  "Visited (Third Quarter)",              "Third Visit",      "Has been visited within the third quarter of the sheep seeking year."),
    (5,  "Completed New Believers School",       "NB School",        "Has completed new believers school."),
    (6,  "Baptized in Water",                    "Water Baptism",    "Has been baptized in water."),
    (7,  "Baptized in the Holy Ghost",           "HG Baptism",       "Has been baptized in the Holy Ghost."),
    (8,  "Completed Soul-Winning School",        "SW School",        "Has completed Soul-Winning School."),
    (9,  "Invited Friend to Church",             "Friend Invited",   "Has invited at least one friend to church."),
    (10, "Joined Basonta or Creative Arts",      "Joined Basonta",   "Has been planted in a Basonta or a Creative Arts ministry."),
    (11, "Introduced to Lead Pastor",            "LP Intro",         "Has been introduced to the Lead Pastor."),
    (12, "Introduced to First Love Mother",      "Mother Intro",     "Has been introduced to a First Love Mother."),
    (13, "Attended All-Night Prayer",            "All Night",        "Has attended an all-night prayer meeting at the centre at least once."),
    (14, "Attended Meeting God",                 "Meeting God",      "Has attended Meeting God service at least once."),
    (15, "Attended Federal Event",               "Federal Event",    "Has attended a Federal Outreach, Conference, or Camp Meeting at least once."),
    (16, "Completed Seeing & Hearing Education", "Seeing & Hearing", "Has been taken through Seeing and Hearing education."),
    (17, "Interceded For (3+ Hours)",            "Interceded 3+Hrs", "Has been interceded for by a sheep-seeker for at least three hours."),
    (18, "Attended Sunday Services",             "Attendance",       "Has reached the Sunday service attendance goal."),
]


class AuditAction(str, Enum):
    LOGIN             = "LOGIN"
    LOGIN_FAILED      = "LOGIN_FAILED"
    CREATE_USER       = "CREATE_USER"
    UPDATE_USER       = "UPDATE_USER"
    DELETE_USER       = "DELETE_USER"
    CREATE_CONVERT    = "CREATE_CONVERT"
    UPDATE_CONVERT    = "UPDATE_CONVERT"
    DELETE_CONVERT    = "DELETE_CONVERT"
    BULK_REGISTER     = "BULK_REGISTER"
    CREATE_GROUP      = "CREATE_GROUP"
    UPDATE_GROUP      = "UPDATE_GROUP"
    ARCHIVE_GROUP     = "ARCHIVE_GROUP"
    DELETE_GROUP      = "DELETE_GROUP"
    CLONE_GROUP       = "CLONE_GROUP"
    UPDATE_PROGRESS   = "UPDATE_PROGRESS"
    MARK_ATTENDANCE   = "MARK_ATTENDANCE"
    DELETE_ATTENDANCE = "DELETE_ATTENDANCE"
    CREATE_MILESTONE  = "CREATE_MILESTONE"
    UPDATE_MILESTONE  = "UPDATE_MILESTONE"
    DELETE_MILESTONE  = "DELETE_MILESTONE"
    EXPORT_DATA       = "EXPORT_DATA"
