START_HOUR = 8
END_HOUR = 19
INTERVAL_MINUTES = 30


def generate_time_slots() -> list[str]:
    """Bookable slots from 8:00 AM to 7:00 PM, every 30 minutes."""
    slots = []
    for hour in range(START_HOUR, END_HOUR + 1):
        for minute in range(0, 60, INTERVAL_MINUTES):
            if hour == END_HOUR and minute > 0:
                break

            hour12 = hour - 12 if hour > 12 else (12 if hour == 0 else hour)
            ampm = "PM" if hour >= 12 else "AM"
            slots.append(f"{hour12}:{minute:02d} {ampm}")
    return slots
