import copy
from typing import List

import pytest

from store.documents import ResumeStore

SAMPLE_RESUME = {
    "name": "Aditya Tiwary",
    "role": "Business Analyst",
    "phone": "+44 20 7123 4567",
    "email": "Aditya@Example.com",
    "linkedin": "linkedin.com/in/aditya",
    "location": "Birmingham",
    "summary": "Nine years of experience in business analysis and supply chain management.",
    "experience": [
        {
            "title": "Supply Chain Analyst",
            "companyName": "Unilever",
            "date": "01/2019 - 12/2022",
            "companyLocation": "London, UK",
            "description": "Streamlined logistics processes.",
            "accomplishment": "Optimized inventory levels.",
        },
        {
            "title": "Logistics Coordinator",
            "companyName": "DHL",
            "date": "01/2015 - 12/2018",
            "companyLocation": "Leeds, UK",
            "description": "Coordinated regional deliveries.",
            "accomplishment": "Cut late deliveries.",
        },
    ],
    "education": [
        {
            "degree": "MSc Supply Chain and Logistics Management",
            "institution": "University of Warwick",
            "duration": "2011 - 2012",
            "grade": "First Class",
        }
    ],
    "achievements": [
        {
            "keyAchievements": "Team Lead for Sustainability Project",
            "describe": "Spearheaded an initiative to reduce carbon footprint.",
        }
    ],
    "courses": [
        {
            "title": "Advanced Excel for Productivity",
            "description": "Certification by Corporate Finance Institute.",
        }
    ],
    "skills": ["Supply Chain Management", "Logistics Planning", "Microsoft Office"],
    "projects": [
        {
            "title": "Supply Chain Optimization",
            "duration": "01/2021 - 12/2021",
            "description": "Built a model to optimize supply chain operations.",
        }
    ],
}


@pytest.fixture
def resume_data():
    return copy.deepcopy(SAMPLE_RESUME)


@pytest.fixture
def store(tmp_path):
    return ResumeStore.from_url(f"sqlite:///{tmp_path / 'resumes.db'}")


class FakeLLM:
    """Returns scripted responses in order and records every prompt."""

    def __init__(self, *responses: str):
        self.responses: List[str] = list(responses)
        self.prompts: List[str] = []

    def chat(self, prompt: str, *, max_retries: int = 3) -> str:
        self.prompts.append(prompt)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class ManualTimer:
    """threading.Timer look-alike that only fires when told to."""

    def __init__(self, registry, interval, function, args=None, kwargs=None):
        self.registry = registry
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled and not self.fired:
            self.fired = True
            return self.function(*self.args, **self.kwargs)
        return None


class TimerRegistry:
    def __init__(self):
        self.timers: List[ManualTimer] = []

    def __call__(self, interval, function, args=None, kwargs=None):
        timer = ManualTimer(self, interval, function, args, kwargs)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> List[ManualTimer]:
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]

    def fire_all(self):
        for timer in self.active:
            timer.fire()


@pytest.fixture
def timers():
    return TimerRegistry()


@pytest.fixture
def fake_llm():
    return FakeLLM
