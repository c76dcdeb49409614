"""
Output writers: GeoJSON and interactive Folium HTML map of a query result.

Both take the query point and the ``QueryResult`` returned by
``KDTree.nearest_with_stats``.
"""

from __future__ import annotations

import json


def _feature(point, role: str, **props) -> dict:
    return {
        "type": "Feature",
        "geometry": {
            "type": "Point",
            "coordinates": [round(point.longitude, 6), round(point.latitude, 6)],
        },
        "properties": {"label": point.label, "role": role, **props},
    }


# ============================================================================
# GeoJSON
# ============================================================================

def write_geojson(target, result, path: str) -> None:
    """Write a FeatureCollection with the query point and its nearest location."""
    features = [
        _feature(target, "query"),
        _feature(result.point, "nearest",
                 distance_km=round(result.distance_km, 3),
                 nodes_visited=result.nodes_visited),
        {
            "type": "Feature",
            "geometry": {
                "type": "LineString",
                "coordinates": [
                    [round(target.longitude, 6), round(target.latitude, 6)],
                    [round(result.point.longitude, 6), round(result.point.latitude, 6)],
                ],
            },
            "properties": {"role": "link", "distance_km": round(result.distance_km, 3)},
        },
    ]
    fc = {"type": "FeatureCollection", "features": features}
    with open(path, "w") as f:
        json.dump(fc, f)
    print(f"Wrote GeoJSON: {path}  ({len(features)} features)")


# ============================================================================
# Interactive Folium HTML map
# ============================================================================

def write_html_map(target, result, path: str, title: str = "Nearest location") -> None:
    """Write an interactive Leaflet map with the query, the match and a link line."""
    import folium

    center_lat = (target.latitude + result.point.latitude) / 2.0
    center_lon = (target.longitude + result.point.longitude) / 2.0
    m = folium.Map(location=[center_lat, center_lon], zoom_start=5,
                   tiles="CartoDB positron")

    folium.Marker(
        [target.latitude, target.longitude],
        tooltip=f"Query ({target.latitude:.4f}, {target.longitude:.4f})",
        icon=folium.Icon(color="blue"),
    ).add_to(m)
    folium.Marker(
        [result.point.latitude, result.point.longitude],
        tooltip=f"{result.point.label} — {result.distance_km:.1f} km",
        icon=folium.Icon(color="red"),
    ).add_to(m)
    folium.PolyLine(
        [[target.latitude, target.longitude],
         [result.point.latitude, result.point.longitude]],
        color="grey", weight=2, dash_array="6",
    ).add_to(m)

    legend_html = f"""
    <div style="position:fixed; bottom:30px; left:30px; z-index:1000;
                background:white; padding:10px 14px; border:2px solid grey;
                border-radius:5px; font-size:13px; line-height:1.6;">
        <b>{title}</b><br>
        Nearest: {result.point.label}<br>
        Distance: {result.distance_km:.1f} km &nbsp; Nodes visited: {result.nodes_visited}
    </div>
    """
    m.get_root().html.add_child(folium.Element(legend_html))
    m.save(path)
    print(f"Wrote HTML map: {path}")
