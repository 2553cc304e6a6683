#!/usr/bin/env python3
"""
Flask API Server for the Quiz Question Matching System

Features:
- Structured JSON error responses
- Request logging with durations
- Security headers on every response
- Health and statistics endpoints
"""

import json
import logging
import traceback
from datetime import datetime
from functools import wraps
import time
from typing import Dict, Any, Optional

from flask import Flask, request, Response
from flask_cors import CORS

from quiz_match_service import QuizMatchService

api_logger = logging.getLogger('QuizMatch-API')


def log_request(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        start_time = time.time()
        api_logger.info(f"{request.method} {request.path} - IP: {request.remote_addr}")

        try:
            response = f(*args, **kwargs)
            duration = time.time() - start_time
            status = getattr(response, 'status_code', 200)
            api_logger.info(f"{request.method} {request.path} - "
                            f"Status: {status} - Duration: {duration:.3f}s")
            return response
        except Exception as e:
            duration = time.time() - start_time
            api_logger.error(f"{request.method} {request.path} - "
                             f"Error: {str(e)} - Duration: {duration:.3f}s")
            raise

    return decorated_function


def unicode_jsonify(data: Dict[str, Any], status_code: int = 200) -> Response:
    """JSON response with Unicode preserved and security headers"""
    response = Response(
        json.dumps(data, ensure_ascii=False, indent=2, default=str),
        content_type='application/json; charset=utf-8',
        status=status_code
    )
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate'
    return response


def _error(message: str, status_code: int) -> Response:
    return unicode_jsonify({
        "error": message,
        "success": False,
        "timestamp": datetime.now().isoformat()
    }, status_code)


def _parse_question(payload: Dict[str, Any]):
    """(question, options, course, test) from a request object; raises ValueError"""
    question = payload.get('question', '')
    if not isinstance(question, str) or not question.strip():
        raise ValueError("Question parameter is required")
    options = payload.get('options', [])
    if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
        raise ValueError("Options must be a list of strings")
    return question.strip(), options, payload.get('course_name'), payload.get('test_name')


def create_app(service: Optional[QuizMatchService] = None) -> Flask:
    """Build the Flask app around a (possibly injected) service instance"""
    if service is None:
        service = QuizMatchService()
        service.initialize()

    app = Flask(__name__)
    app.config.update(
        JSON_SORT_KEYS=False,
        MAX_CONTENT_LENGTH=16 * 1024 * 1024,
    )
    CORS(app, origins=["*"], methods=["GET", "POST", "OPTIONS"])
    app.extensions['quiz_match_service'] = service
    max_batch_size = service.config.get("system", {}).get("max_batch_size", 100)

    @app.errorhandler(Exception)
    def handle_error(error):
        error_type = type(error).__name__
        status_code = getattr(error, 'code', None)
        if not isinstance(status_code, int):
            status_code = 500

        api_logger.error(f"API Error: {error_type} - {error}")
        if status_code >= 500:
            api_logger.error(f"Traceback: {traceback.format_exc()}")

        return unicode_jsonify({
            "error": {
                "type": error_type,
                "message": str(error),
                "status_code": status_code,
                "timestamp": datetime.now().isoformat(),
                "path": request.path if request else "unknown"
            },
            "success": False
        }, status_code)

    @app.route('/', methods=['GET'])
    @log_request
    def root():
        return unicode_jsonify({
            "service": "Quiz Question Matching API",
            "version": "1.0.0",
            "status": "operational",
            "endpoints": {
                "match": "/api/match",
                "batch": "/api/batch",
                "feedback": "/api/feedback",
                "clear_cache": "/api/cache/clear",
                "health": "/api/health",
                "stats": "/api/stats"
            },
            "timestamp": datetime.now().isoformat()
        })

    @app.route('/api/health', methods=['GET'])
    def health_check():
        health_info = service.health_check()
        status_code = 200
        if health_info.get("status") == "error":
            status_code = 503
        health_info["timestamp"] = datetime.now().isoformat()
        return unicode_jsonify(health_info, status_code)

    @app.route('/api/stats', methods=['GET'])
    def get_stats():
        if not service.initialized:
            return _error("Quiz match service not initialized", 503)
        stats = service.get_system_stats()
        stats["timestamp"] = datetime.now().isoformat()
        return unicode_jsonify(stats, 500 if "error" in stats else 200)

    @app.route('/api/match', methods=['POST'])
    @log_request
    def match_question():
        if not service.initialized:
            return _error("Quiz match service not initialized", 503)

        data = request.get_json(silent=True)
        if not data or not isinstance(data, dict):
            return _error("No JSON data provided", 400)
        try:
            question, options, course_name, test_name = _parse_question(data)
        except ValueError as e:
            return _error(str(e), 400)

        result = service.answer_question(question, options, course_name, test_name,
                                         debug=bool(data.get('debug', False)))
        result["question"] = question
        result["timestamp"] = datetime.now().isoformat()
        return unicode_jsonify(result)

    @app.route('/api/batch', methods=['POST'])
    @log_request
    def batch_match():
        if not service.initialized:
            return _error("Quiz match service not initialized", 503)

        data = request.get_json(silent=True)
        if not data or not isinstance(data, dict):
            return _error("No JSON data provided", 400)

        questions = data.get('questions', [])
        if not questions or not isinstance(questions, list):
            return _error("Questions parameter must be a non-empty list", 400)
        if len(questions) > max_batch_size:
            return _error(f"Batch size too large. Maximum {max_batch_size} questions allowed", 400)

        api_logger.info(f"Processing batch of {len(questions)} questions")
        results = []
        matched_count = 0
        for i, item in enumerate(questions, 1):
            if not isinstance(item, dict):
                results.append({"question_id": i, "found": False, "message": "Invalid question object"})
                continue
            try:
                question, options, course_name, test_name = _parse_question(item)
            except ValueError as e:
                results.append({"question_id": i, "found": False, "message": str(e)})
                continue

            result = service.answer_question(question, options, course_name, test_name)
            result["question_id"] = i
            result["question"] = question
            if result.get("found"):
                matched_count += 1
            results.append(result)

        return unicode_jsonify({
            "metadata": {
                "total_questions": len(questions),
                "matched_count": matched_count,
                "match_rate": (matched_count / len(questions)) * 100,
                "timestamp": datetime.now().isoformat()
            },
            "results": results
        })

    @app.route('/api/feedback', methods=['POST'])
    @log_request
    def submit_feedback():
        data = request.get_json(silent=True)
        if not data or not isinstance(data, dict):
            return _error("No JSON data provided", 400)

        question = data.get('question')
        entry_key = data.get('entry_key')
        was_correct = data.get('was_correct')
        if not isinstance(question, str) or not question.strip():
            return _error("Question parameter is required", 400)
        if not isinstance(entry_key, str) or not entry_key:
            return _error("entry_key parameter is required", 400)
        if not isinstance(was_correct, bool):
            return _error("was_correct must be true or false", 400)

        record = service.record_feedback(question, entry_key, was_correct)
        record["success"] = True
        return unicode_jsonify(record)

    @app.route('/api/cache/clear', methods=['POST'])
    def clear_cache():
        service.clear_cache()
        return unicode_jsonify({"success": True, "timestamp": datetime.now().isoformat()})

    return app


def main():
    """Main function to run the API server"""
    import argparse

    parser = argparse.ArgumentParser(description="Quiz Question Matching HTTP API Server")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=5000, help="Port to bind to (default: 5000)")
    parser.add_argument("--debug", action="store_true", help="Run in debug mode")
    args = parser.parse_args()

    service = QuizMatchService()
    if not service.initialize():
        print("WARNING: Quiz match service failed to initialize.")
    app = create_app(service)

    stats = service.get_system_stats()
    print("Quiz Question Matching - HTTP API Server")
    print("=" * 50)
    print(f"Corpus entries: {stats.get('corpus_entries', 0)}")
    print(f"Starting server on http://{args.host}:{args.port}")
    print("=" * 50)

    app.run(host=args.host, port=args.port, debug=args.debug, threaded=True)


if __name__ == "__main__":
    main()
