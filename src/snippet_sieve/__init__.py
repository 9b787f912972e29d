"""GitHub 저장소에서 흥미로운 코드 스니펫을 골라 제공하는 패키지."""

__version__ = "0.1.0"
