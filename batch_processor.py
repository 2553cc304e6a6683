#!/usr/bin/env python3
"""
Batch Processing for Quiz Question Matching

Features:
- Progress tracking with ETA calculation
- Parallel processing with a thread pool
- Per-question error capture without aborting the batch
- JSON report with match rate and matcher statistics

Input is a JSON array (or JSON Lines file) of objects:
    {"question": "...", "options": ["...", "..."], "course_name": "...", "test_name": "..."}
"""

import argparse
import json
import os
import sys
import time
from datetime import datetime
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Dict, Any, Optional
import threading
from dataclasses import dataclass

from quiz_match_service import QuizMatchService


@dataclass
class BatchProgress:
    """Progress tracking for batch operations"""
    total: int = 0
    completed: int = 0
    failed: int = 0
    matched: int = 0
    start_time: float = 0
    current_question: str = ""

    @property
    def success_rate(self) -> float:
        if self.completed == 0:
            return 0.0
        return (self.completed - self.failed) / self.completed * 100

    @property
    def eta_seconds(self) -> float:
        if self.completed == 0 or self.total == 0:
            return 0.0
        elapsed = time.time() - self.start_time
        rate = self.completed / elapsed if elapsed > 0 else 0.0
        remaining = self.total - self.completed
        return remaining / rate if rate > 0 else 0.0

    def format_eta(self) -> str:
        eta = self.eta_seconds
        if eta < 60:
            return f"{eta:.0f}s"
        elif eta < 3600:
            return f"{eta/60:.1f}m"
        else:
            return f"{eta/3600:.1f}h"


class ProgressTracker:
    """Thread-safe progress tracking"""
    def __init__(self):
        self.progress = BatchProgress()
        self.lock = threading.Lock()
        self.results = []
        self.errors = []

    def start(self, total: int):
        with self.lock:
            self.progress.total = total
            self.progress.start_time = time.time()

    def update(self, question: str, success: bool, result: Dict[str, Any]):
        with self.lock:
            self.progress.completed += 1
            self.progress.current_question = question[:50] + "..." if len(question) > 50 else question

            if success:
                self.results.append(result)
                if result.get("found"):
                    self.progress.matched += 1
            else:
                self.progress.failed += 1
                self.errors.append({"question": question, "error": result.get("error", "Unknown error")})

    def is_done(self) -> bool:
        with self.lock:
            return self.progress.completed >= self.progress.total

    def get_status(self) -> str:
        with self.lock:
            p = self.progress
            percent = p.completed / p.total * 100 if p.total else 0.0
            return (f"🔄 Progress: {p.completed}/{p.total} ({percent:.1f}%) - "
                    f"Matched: {p.matched} - ETA: {p.format_eta()} - "
                    f"Current: {p.current_question}")


def load_questions(input_file: str) -> List[Dict[str, Any]]:
    """Read a JSON array or JSON Lines file of question objects"""
    with open(input_file, 'r', encoding='utf-8') as f:
        content = f.read().strip()
    if not content:
        return []
    if content.startswith('['):
        data = json.loads(content)
    else:
        data = [json.loads(line) for line in content.splitlines() if line.strip()]
    return [item for item in data if isinstance(item, dict)]


def process_single_question(service: QuizMatchService, tracker: ProgressTracker,
                            question_id: int, item: Dict[str, Any], debug: bool) -> Dict[str, Any]:
    """Process one question with error handling"""
    question = str(item.get('question', ''))
    try:
        start_time = time.time()
        result = service.answer_question(
            question.strip(),
            item.get('options') or [],
            course_name=item.get('course_name'),
            test_name=item.get('test_name'),
            debug=debug
        )
        duration = time.time() - start_time

        result.update({
            "question_id": question_id,
            "question": question,
            "processing_time": round(duration, 3)
        })
        tracker.update(question, True, result)
        return result

    except Exception as e:
        error_result = {
            "question_id": question_id,
            "question": question,
            "found": False,
            "error": f"Processing error: {str(e)}",
            "processing_time": 0.0
        }
        tracker.update(question, False, error_result)
        return error_result


def display_progress(tracker: ProgressTracker):
    while not tracker.is_done():
        print(f"\r{tracker.get_status()}", end="", flush=True)
        time.sleep(0.5)
    print()


def process_batch(service: QuizMatchService, questions: List[Dict[str, Any]], debug: bool = False,
                  max_workers: int = 4, show_progress: bool = False) -> Dict[str, Any]:
    """Match every question in parallel and build the report"""
    tracker = ProgressTracker()
    tracker.start(len(questions))

    progress_thread = None
    if show_progress:
        progress_thread = threading.Thread(target=display_progress, args=(tracker,), daemon=True)
        progress_thread.start()

    batch_start = time.time()
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [executor.submit(process_single_question, service, tracker, i + 1, item, debug)
                   for i, item in enumerate(questions)]
        for future in as_completed(futures):
            pass  # Results are collected by the tracker
    batch_duration = time.time() - batch_start

    if progress_thread:
        progress_thread.join(timeout=1)

    performance = service.matcher.get_performance_stats()
    total = len(questions)
    metadata = {
        "processed_at": datetime.now().isoformat(),
        "total_questions": total,
        "successful_questions": len(tracker.results),
        "failed_questions": tracker.progress.failed,
        "matched_questions": tracker.progress.matched,
        "match_rate": tracker.progress.matched / total * 100 if total else 0.0,
        "total_processing_time": round(batch_duration, 3),
        "average_question_time": round(batch_duration / total, 3) if total else 0.0,
        "parallel_workers": max_workers,
        "cache_hit_rate": performance['cache']['hit_rate'] * 100,
        "fallback_matches": performance['fallback_matches'],
    }

    output_data = {
        "metadata": metadata,
        "results": sorted(tracker.results, key=lambda x: x.get("question_id", 0)),
        "errors": tracker.errors if tracker.errors else None
    }
    return {k: v for k, v in output_data.items() if v is not None}


def process_batch_file(service: QuizMatchService, input_file: str, output_file: Optional[str] = None,
                       debug: bool = False, max_workers: int = 4) -> bool:
    try:
        if not os.path.exists(input_file):
            print(f"❌ Error: Input file '{input_file}' not found.")
            return False

        questions = load_questions(input_file)
        if not questions:
            print(f"❌ Error: No questions found in '{input_file}'.")
            return False

        print(f"📄 Loaded {len(questions)} questions from '{input_file}'")
        output_data = process_batch(service, questions, debug, max_workers, show_progress=True)
        metadata = output_data["metadata"]
        metadata["input_file"] = input_file
        metadata["output_file"] = output_file

        if output_file:
            with open(output_file, 'w', encoding='utf-8') as f:
                json.dump(output_data, f, ensure_ascii=False, indent=2, default=str)
            print(f"💾 Results saved to: {output_file}")

        print("\n" + "=" * 50)
        print("📊 BATCH PROCESSING SUMMARY")
        print("=" * 50)
        print(f"Total questions: {metadata['total_questions']}")
        print(f"Matched: {metadata['matched_questions']} ({metadata['match_rate']:.1f}%)")
        print(f"Fallback matches: {metadata['fallback_matches']}")
        print(f"Failed: {metadata['failed_questions']}")
        print(f"Total time: {metadata['total_processing_time']:.2f}s")
        print(f"Average per question: {metadata['average_question_time']:.3f}s")
        print(f"Cache hit rate: {metadata['cache_hit_rate']:.1f}%")

        errors = output_data.get("errors", [])
        if errors:
            print("\n⚠️  Errors encountered:")
            for error in errors[:5]:
                print(f"  - {error['question'][:50]}: {error['error']}")
            if len(errors) > 5:
                print(f"  ... and {len(errors) - 5} more errors")
        print("=" * 50)
        return True

    except Exception as e:
        print(f"❌ Fatal error during batch processing: {e}")
        return False


def main():
    parser = argparse.ArgumentParser(description="Batch match observed quiz questions")
    parser.add_argument("input_file", nargs='?', default=None,
                        help="JSON or JSON Lines file with questions. Required unless --stats-only is used.")
    parser.add_argument("-o", "--output", help="Output JSON file for results")
    parser.add_argument("-d", "--debug", action="store_true", help="Include match traces")
    parser.add_argument("-w", "--workers", type=int, default=4, help="Parallel workers (default: 4)")
    parser.add_argument("--stats-only", action="store_true", help="Show system statistics and exit.")
    args = parser.parse_args()

    print("🚀 Quiz Question Matching - Batch Processor")
    print("=" * 50)

    service = QuizMatchService()
    if not service.initialize():
        print("❌ Service initialization failed!")
        sys.exit(1)

    if args.stats_only:
        stats = service.get_system_stats()
        print("📊 System Statistics:")
        print(f"   Corpus entries: {stats.get('corpus_entries', 0)}")
        print(f"   Courses: {stats.get('courses', 0)}")
        print(f"   Feedback records: {stats.get('feedback_records', 0)}")
        print("=" * 50)
        sys.exit(0)

    if not args.input_file:
        parser.error("the following arguments are required: input_file")

    success = process_batch_file(service, args.input_file, args.output, args.debug, args.workers)
    service.close()
    if success:
        print("✅ Batch processing completed successfully!")
        sys.exit(0)
    else:
        print("❌ Batch processing failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
