from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

LEARNING_CATEGORIES: List[Dict[str, Any]] = [
    {
        "title": "Safety Standards",
        "description": "Learn about essential safety protocols and standards",
        "videos": [
            {"title": "Introduction to Safety Standards", "duration": "5:30", "standards": ["IS 12345", "IS 67890"], "thumbnail": "/assets/images/safety1.jpg"},
            {"title": "Workplace Safety Guidelines", "duration": "8:45", "standards": ["IS 45678"], "thumbnail": "/assets/images/safety2.jpg"},
            {"title": "Emergency Response Protocols", "duration": "6:20", "standards": ["IS 98765"], "thumbnail": "/assets/images/safety3.jpg"},
        ],
    },
    {
        "title": "Quality Control",
        "description": "Master quality management and control techniques",
        "videos": [
            {"title": "Quality Management Basics", "duration": "6:15", "standards": ["IS 98765"], "thumbnail": "/assets/images/quality1.jpg"},
            {"title": "Inspection Techniques", "duration": "7:20", "standards": ["IS 34567"], "thumbnail": "/assets/images/quality2.jpg"},
            {"title": "Documentation and Reporting", "duration": "4:55", "standards": ["IS 23456"], "thumbnail": "/assets/images/quality3.jpg"},
        ],
    },
    {
        "title": "Certification Process",
        "description": "Understanding certification requirements and procedures",
        "videos": [
            {"title": "Certification Overview", "duration": "7:30", "standards": ["IS 87654"], "thumbnail": "/assets/images/cert1.jpg"},
            {"title": "Application Process", "duration": "5:45", "standards": ["IS 65432"], "thumbnail": "/assets/images/cert2.jpg"},
        ],
    },
    {
        "title": "Testing Methods",
        "description": "Learn various testing and validation methods",
        "videos": [
            {"title": "Material Testing Basics", "duration": "8:15", "standards": ["IS 54321"], "thumbnail": "/assets/images/test1.jpg"},
            {"title": "Advanced Testing Procedures", "duration": "9:30", "standards": ["IS 12345"], "thumbnail": "/assets/images/test2.jpg"},
        ],
    },
]


class Video(BaseModel):
    title: str
    duration: str
    standards: list[str]
    thumbnail: str


class Category(BaseModel):
    title: str
    description: str
    videos: list[Video]


class LearningResponse(BaseModel):
    categories: list[Category] = Field(..., description="Categories that still have matching videos.")


def filter_categories(search: Optional[str]) -> list[dict]:
    term = (search or "").strip().lower()
    filtered = []
    for category in LEARNING_CATEGORIES:
        videos = [
            video for video in category["videos"]
            if term in video["title"].lower() or any(term in standard.lower() for standard in video["standards"])
        ]
        if videos:
            filtered.append({**category, "videos": videos})
    return filtered


router = APIRouter(prefix="/api", tags=["Learning Hub"])

@router.get(
    "/learning",
    status_code=200,
    summary="Search the Learning Hub",
    description="Lists learning videos by category, keeping only videos whose title or standard code contains `search`.",
    operation_id="searchLearning",
    response_model=LearningResponse,
)
def search_learning(search: Optional[str] = Query(None, description="Case insensitive substring.")) -> dict:
    return {"categories": filter_categories(search)}
