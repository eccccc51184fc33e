"""Pure domain layer: clock, value helpers and DTOs.  No I/O, no ORM."""
