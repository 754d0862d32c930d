#!/usr/bin/env python3
"""
Attendance System Diagnostic Script
==================================

This script diagnoses common issues with the face attendance system
and provides step-by-step fixes.
"""

import sys
import importlib

from utils.config import config, validate_config

def check_python_environment():
    """Check if Python environment is set up correctly."""
    print("=== Python Environment Check ===")

    version = sys.version_info
    print(f"Python Version: {version.major}.{version.minor}.{version.micro}")

    if version < (3, 8):
        print("❌ Python 3.8+ required")
        return False
    else:
        print("✅ Python version OK")

    # import name -> pip name
    required_packages = {
        'cv2': 'opencv-python',
        'numpy': 'numpy',
        'pandas': 'pandas',
        'openpyxl': 'openpyxl',
        'face_recognition': 'face_recognition',
        'fastapi': 'fastapi',
        'uvicorn': 'uvicorn',
    }

    missing_packages = []
    for module, package in required_packages.items():
        try:
            importlib.import_module(module)
            print(f"✅ {module} installed")
        except ImportError:
            print(f"❌ {module} missing")
            missing_packages.append(package)

    if missing_packages:
        print(f"\nTo install missing packages:")
        print(f"pip install {' '.join(missing_packages)}")
        return False

    return True

def check_configuration():
    """Validate configuration and create output directories."""
    print("\n=== Configuration Check ===")

    if not validate_config():
        print("❌ Configuration is invalid (see log for details)")
        return False

    print(f"✅ Match threshold: {config.face.match_threshold}")
    print(f"✅ Required captures: {config.enrollment.required_captures}")
    print(f"✅ Work start time: {config.attendance.work_start_time}")

    try:
        config.create_directories()
        print(f"✅ Output directory: {config.logging.output_dir}/")
    except OSError as e:
        print(f"❌ Failed to create output directories: {e}")
        return False
    return True

def test_camera_access():
    """Test if camera can be accessed."""
    print("\n=== Camera Access Test ===")

    from camera.stream_handler import CameraStream
    from utils.exceptions import DeviceError

    camera = CameraStream()
    try:
        camera.open()
        frame = camera.read()
        if frame is None:
            print("❌ Camera opened but no frame received")
            return False
        height, width = frame.shape[:2]
        print(f"✅ Camera {camera.device_id} working: {width}x{height}")
        return True
    except DeviceError as e:
        print(f"❌ {e}")
        return False
    finally:
        camera.release()

def test_face_models():
    """Load the face detection and descriptor models."""
    print("\n=== Face Model Test ===")

    from face_engine.descriptor_extractor import load_models

    try:
        extractor = load_models()
    except ImportError:
        print("❌ face_recognition library not installed")
        print("   Install with: pip install face_recognition")
        return False
    except RuntimeError as e:
        print(f"❌ Face model loading failed: {e}")
        return False

    print(f"✅ Face models loaded (detector: {extractor.model})")
    return True

def test_databases():
    """Open both databases and cross-check employees against enrolled face data."""
    print("\n=== Database Test ===")

    from attendance.attendance_system import AttendanceSystem
    from face_engine.reference_store import ReferenceStore
    from utils.exceptions import PersistenceError

    try:
        attendance_system = AttendanceSystem()
        with ReferenceStore() as reference_store:
            employee_ids = {emp.id for emp in attendance_system.list_active_employees()}
            identities = set(reference_store.identities())
            face_records = reference_store.count()
    except PersistenceError as e:
        print(f"❌ Database error: {e}")
        return False

    print(f"✅ Attendance database: {config.attendance.database_path} ({len(employee_ids)} employees)")
    print(f"✅ Face database: {config.storage.reference_db_path} ({face_records} records)")

    healthy = True
    without_faces = employee_ids - identities
    if without_faces:
        print(f"⚠️  {len(without_faces)} employees have no face data and cannot be recognized")
        healthy = False

    orphaned = identities - employee_ids
    if orphaned:
        print(f"⚠️  {len(orphaned)} face records belong to no active employee")
        healthy = False

    if not employee_ids:
        print("ℹ️  No employees enrolled yet: python main.py enroll --help")
    return healthy

def generate_fix_recommendations(test_results):
    """Generate specific fix recommendations based on test results."""
    print("\n" + "="*50)
    print("🔧 FIX RECOMMENDATIONS")
    print("="*50)

    if not test_results['environment']:
        print("\n1. INSTALL MISSING DEPENDENCIES:")
        print("   pip install -e .")
        print("   pip install dlib  # May require compilation tools")

    if not test_results['configuration']:
        print("\n2. FIX CONFIGURATION:")
        print("   • Check MATCH_THRESHOLD, REQUIRED_CAPTURES and WORK_START_TIME")
        print("   • Make sure OUTPUT_DIR is writable")

    if not test_results['camera']:
        print("\n3. CAMERA ISSUES:")
        print("   • Check if camera is connected and not used by other apps")
        print("   • Try different camera ID: --camera 1 or CAMERA_ID=1")

    if not test_results['face_models']:
        print("\n4. FACE RECOGNITION ISSUES:")
        print("   • Install dlib: pip install dlib")
        print("   • On Linux: apt-get install cmake")
        print("   • Use FACE_MODEL=hog if the CNN detector is unavailable")

    if not test_results['databases']:
        print("\n5. DATABASE ISSUES:")
        print("   • Re-enroll employees without face data")
        print("   • Remove stale employees: python main.py employees delete <ID>")

def main():
    """Run complete diagnostic."""
    print("🔍 FACE ATTENDANCE SYSTEM DIAGNOSTIC")
    print("=" * 60)

    environment_ok = check_python_environment()
    test_results = {
        'environment': environment_ok,
        'configuration': check_configuration(),
        'camera': test_camera_access() if environment_ok else False,
        'face_models': test_face_models() if environment_ok else False,
        'databases': test_databases() if environment_ok else False
    }

    total_tests = len(test_results)
    passed_tests = sum(test_results.values())
    health_percentage = (passed_tests / total_tests) * 100

    print(f"\n" + "="*60)
    print(f"📊 DIAGNOSTIC RESULTS: {passed_tests}/{total_tests} tests passed ({health_percentage:.1f}%)")

    if health_percentage >= 80:
        print("🟢 SYSTEM STATUS: HEALTHY")
    elif health_percentage >= 60:
        print("🟡 SYSTEM STATUS: PARTIAL")
    else:
        print("🔴 SYSTEM STATUS: NEEDS ATTENTION")

    generate_fix_recommendations(test_results)

    print(f"\n" + "="*60)
    print("💡 NEXT STEPS:")
    print("1. Fix the issues listed above")
    print("2. Re-run this diagnostic: python main.py diagnose")
    print("3. Enroll employees: python main.py enroll --name ... --employee-id ... --department ...")
    print("4. Start attendance: python main.py attend")

    return 0 if passed_tests == total_tests else 1

if __name__ == "__main__":
    sys.exit(main())
