"""Constants for the EduPage integration."""

from .edupage.config import (
	CONF_FETCH_MENU,
	CONF_FILTER_HOMEWORK_DUPLICATES,
	CONF_INTERVAL,
	CONF_PASSWORD,
	CONF_STUDENT_FILTER,
	CONF_SUBDOMAIN,
	CONF_TEACHER_SOURCE,
	CONF_USERNAME,
	DEFAULT_FETCH_MENU,
	DEFAULT_FILTER_HOMEWORK_DUPLICATES,
	DEFAULT_INTERVAL_MINUTES,
)
from .edupage.sync import (
	STATE_ACTIVE_STUDENT,
	STATE_ACTIVE_STUDENT_ID,
	STATE_CONNECTION,
	STATE_HOMEWORK_COUNT,
	STATE_HOMEWORK_HTML,
	STATE_HOMEWORK_JSON,
	STATE_LAST_SYNC,
	STATE_MENU_TODAY,
	STATE_MENU_WEEK_JSON,
	STATE_NOTIFICATIONS_COUNT,
	STATE_NOTIFICATIONS_HTML,
	STATE_NOTIFICATIONS_JSON,
	STATE_SUBJECTS_JSON,
	STATE_TEACHER_COUNT,
	STATE_TEACHERS_JSON,
	STATE_TIMETABLE_HTML,
	STATE_TIMETABLE_NEXT_DATE,
	STATE_TIMETABLE_NEXT_HTML,
)

DOMAIN = "edupage"

# First refresh must not block Home Assistant startup forever
FIRST_REFRESH_TIMEOUT_SECONDS = 120

# Sensor types
SENSOR_CONNECTION = "connection"
SENSOR_HOMEWORK = "homework"
SENSOR_NOTIFICATIONS = "notifications"
SENSOR_TEACHERS = "teachers"
SENSOR_ACTIVE_STUDENT = "active_student"
SENSOR_MENU_TODAY = "menu_today"
SENSOR_HOMEWORK_WIDGET = "homework_widget"
SENSOR_TIMETABLE_WIDGET = "timetable_widget"
SENSOR_TIMETABLE_NEXT_WIDGET = "timetable_next_widget"
SENSOR_NOTIFICATIONS_WIDGET = "notifications_widget"

# Attributes
ATTR_HTML = "html"
ATTR_ITEMS = "items"
ATTR_STUDENT_ID = "student_id"
ATTR_LAST_SYNC = "last_sync"
ATTR_DATE = "date"
ATTR_WEEK = "week"
ATTR_SUBJECTS = "subjects"

# Services
SERVICE_REFRESH_DATA = "refresh_data"
SERVICE_RESELECT_STUDENT = "reselect_student"
