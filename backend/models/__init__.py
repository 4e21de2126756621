from models.timetable_conflict import TimetableConflict
from models.timetable_entry import TimetableEntry

__all__ = [
	"TimetableConflict",
	"TimetableEntry",
]
