"""
console-auth - session guard and face-verified login for the admin console.

    console_auth/
    ├── session.py        # SessionGuard: token, profile, expiry checks
    ├── gate.py           # RouteGate: protected-view decisions
    ├── capture.py        # FaceCaptureFlow: camera sampling + remote verification
    ├── login.py          # LoginScreen: face gate in front of login
    ├── main.py           # FastAPI surface
    ├── models/           # face detection model
    ├── camera/           # webcam source and CLI scripts
    └── utils/            # HTTP client, token store, notifications, JWT helpers
"""

__version__ = "0.1.0"
