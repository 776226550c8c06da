import json
import logging

from fastmcp import FastMCP

from src.engine.itinerary import flatten_itinerary_to_steps, trip_from_document
from src.engine.messages import format_distance
from src.models.status import TrackingSnapshot
from src.server import get_db, get_manager, get_provider
from src.tools.date_utils import parse_instant
from src.tools.error_messages import safe_tool_wrapper

logger = logging.getLogger(__name__)


def format_snapshot(snapshot: TrackingSnapshot) -> str:
    """Render the tracking snapshot as a short multi-line summary."""
    state = (
        "starting"
        if snapshot.is_starting_tracking
        else "on" if snapshot.is_tracking else "off"
    )
    lines = [
        f"Tracking: {state}",
        f"Status ({snapshot.status_level}): {snapshot.status_message}",
    ]

    step = snapshot.current_step
    if step is not None:
        when = step.scheduled_start.isoformat() if step.scheduled_start else "unscheduled"
        lines.append(f"Current activity: {step.place_name or step.step_id} ({when})")
        if snapshot.distance_to_current_step is not None:
            lines.append(
                f"Distance: {format_distance(snapshot.distance_to_current_step)} "
                f"(geofence {format_distance(snapshot.geofence_radius)})"
            )

    status = snapshot.current_step_status
    if status is not None:
        detail = f"Punctuality: {status.status}, phase {status.phase}"
        if status.delta_minutes is not None:
            detail += f", {status.delta_minutes:+.1f} min vs schedule"
        if status.performing:
            detail += ", performing"
        lines.append(detail)

    if snapshot.last_update is not None:
        lines.append(f"Last fix: {snapshot.last_update.isoformat()}")
    return "\n".join(lines)


def register_tracking_tools(mcp: FastMCP) -> None:
    """Register trip tracking tools on the MCP server."""

    @mcp.tool
    async def start_trip_tracking(trip_json: str) -> str:
        """Start live tracking for a trip.  Any other trip being tracked is
        stopped first, since only one trip is tracked at a time.

        Args:
            trip_json: The stored trip document as JSON, with "id",
                "userEmail" and "tripData.Itinerary" (days → Morning /
                Lunch / Afternoon / Evening → Activities).

        Returns:
            The tracking status after start-up.
        """

        async def _start() -> str:
            try:
                doc = json.loads(trip_json)
            except json.JSONDecodeError as exc:
                raise ValueError(f"trip_json is not valid JSON ({exc.msg})") from exc
            if not isinstance(doc, dict):
                raise ValueError("trip_json must be a JSON object")

            trip = trip_from_document(doc)
            steps = flatten_itinerary_to_steps(doc)
            session = await get_manager().start_trip_tracking(trip, steps)
            header = f"Trip {trip.id}: {len(steps)} scheduled activities."
            return header + "\n" + format_snapshot(session.snapshot())

        return await safe_tool_wrapper(_start)

    @mcp.tool
    async def stop_trip_tracking() -> str:
        """Stop live tracking and release the location watch.

        Returns:
            Confirmation of the action.
        """
        stopped = await get_manager().stop_trip_tracking()
        if stopped:
            return "Tracking stopped."
        return "Tracking was not running."

    @mcp.tool
    async def report_position(
        latitude: float,
        longitude: float,
        accuracy: float | None = None,
        timestamp: str | None = None,
    ) -> str:
        """Feed one GPS fix from the device into the active tracking session.

        Args:
            latitude: Latitude in degrees.
            longitude: Longitude in degrees.
            accuracy: Horizontal accuracy in metres, if known.
            timestamp: ISO-8601 time of the fix (defaults to now).

        Returns:
            The updated tracking status.
        """

        async def _report() -> str:
            delivered = await get_provider().push_position(
                latitude, longitude, accuracy, parse_instant(timestamp)
            )
            if delivered == 0:
                return "No active tracking session — start tracking a trip first."
            return format_snapshot(get_manager().snapshot())

        return await safe_tool_wrapper(_report)

    @mcp.tool
    async def report_location_error(message: str, code: int | None = None) -> str:
        """Forward a location error from the device.  Permission denial
        (code 1) stops tracking; signal loss (2) and timeouts (3) are
        retried by the device.

        Args:
            message: The raw error text from the device.
            code: Native geolocation error code, if any.

        Returns:
            The updated tracking status.
        """
        delivered = await get_provider().push_error(message, code)
        if delivered == 0:
            return "No active tracking session — start tracking a trip first."
        return format_snapshot(get_manager().snapshot())

    @mcp.tool
    async def tracking_status() -> str:
        """Show the live tracking status for the active trip.

        Returns:
            Tracking state, headline message, current activity and punctuality.
        """
        return format_snapshot(get_manager().snapshot())

    @mcp.tool
    async def trip_location_history(trip_id: str, limit: int = 20) -> str:
        """Show the most recent stored GPS pings of a trip.

        Args:
            trip_id: The trip id.
            limit: Maximum number of pings to list (most recent).

        Returns:
            One line per ping, oldest first.
        """
        records = await get_db().get_trip_locations(trip_id, limit=max(1, limit))
        if not records:
            return f"No stored locations for trip {trip_id}."

        lines = [f"Locations for trip {trip_id}:"]
        for r in records:
            where = f" @ {r.place_name}" if r.place_name else ""
            acc = f" ±{r.accuracy:.0f} m" if r.accuracy is not None else ""
            lines.append(
                f"- {r.timestamp.isoformat()} {r.latitude:.5f}, {r.longitude:.5f}{acc}{where}"
            )
        return "\n".join(lines)

    @mcp.tool
    async def trip_step_statuses(trip_id: str) -> str:
        """Show the stored punctuality status of each activity of a trip.

        Args:
            trip_id: The trip id.

        Returns:
            One line per activity.
        """
        records = await get_db().get_step_statuses(trip_id)
        if not records:
            return f"No stored activity statuses for trip {trip_id}."

        lines = [f"Activity statuses for trip {trip_id}:"]
        for r in records:
            line = f"- {r.place_name or r.step_id}: {r.status}"
            if r.delta_minutes is not None:
                line += f" ({r.delta_minutes:+.1f} min)"
            if r.phase:
                line += f", {r.phase}"
            if r.actual_arrival_time:
                line += f", arrived {r.actual_arrival_time.isoformat()}"
            lines.append(line)
        return "\n".join(lines)

    @mcp.tool
    async def trip_notifications(trip_id: str) -> str:
        """List the notifications raised for a trip in the current session.

        Args:
            trip_id: The trip id.

        Returns:
            One line per notification, oldest first.
        """
        items = await get_db().get_notifications(trip_id)
        if not items:
            return f"No notifications for trip {trip_id}."
        return "\n".join(f"- {n.title}: {n.body}" for n in items)
