#!/usr/bin/env python3
"""
Interactive CLI for the Quiz Question Matching System

Features:
- Question + options entry with command history
- Feedback commands that teach the matcher which matches were right
- Session statistics and matcher performance figures
- Session export to JSON
"""

import os
import json
import time
from datetime import datetime
from typing import Dict, List, Optional
import atexit

try:
    import readline
    HAS_READLINE = True
except ImportError:
    HAS_READLINE = False

from quiz_match_service import QuizMatchService

COMMANDS = ('stats', 'system', 'history', 'debug', 'correct', 'wrong', 'clear cache',
            'export', 'help', 'exit', 'quit')


class InteractiveSession:
    """Interactive session with history and statistics"""

    def __init__(self, service: QuizMatchService):
        self.service = service
        self.question_history = []
        self.session_start = time.time()
        self.total_questions = 0
        self.matched_questions = 0
        self.last_question: Optional[str] = None
        self.last_result: Optional[Dict] = None

    def setup_readline(self):
        histfile = os.path.join(os.path.expanduser("~"), ".quiz_match_history")
        try:
            readline.read_history_file(histfile)
            readline.set_history_length(1000)
        except FileNotFoundError:
            pass
        atexit.register(readline.write_history_file, histfile)
        readline.parse_and_bind('tab: complete')

    def add_question(self, question: str, result: Dict, duration: float):
        self.question_history.append({
            "timestamp": datetime.now().isoformat(),
            "question": question,
            "found": result.get("found", False),
            "confidence": result.get("confidence", 0.0),
            "strategy": result.get("strategy"),
            "duration": duration
        })
        self.total_questions += 1
        if result.get("found", False):
            self.matched_questions += 1
        self.last_question = question
        self.last_result = result

    def get_session_stats(self) -> Dict:
        session_duration = time.time() - self.session_start
        performance = self.service.matcher.get_performance_stats()
        return {
            "session_duration": f"{session_duration/60:.1f} minutes",
            "total_questions": self.total_questions,
            "matched_questions": self.matched_questions,
            "match_rate": (f"{(self.matched_questions/self.total_questions*100):.1f}%"
                           if self.total_questions > 0 else "0%"),
            "avg_match_time": f"{performance['average_time_ms']:.1f}ms",
            "cache_hit_rate": f"{performance['cache']['hit_rate'] * 100:.1f}%"
        }


def parse_options(raw: str) -> List[str]:
    """Options typed on one line, separated by '|'"""
    return [option.strip() for option in raw.split('|') if option.strip()]


def print_banner():
    print("""
==============================================================
            Quiz Question Matching - Interactive Mode
==============================================================
 Type a question, then its answer options separated by '|'

 'stats'       - Session statistics
 'system'      - Corpus and matcher information
 'history'     - Recent questions
 'debug on'    - Show match traces ('debug off' to hide)
 'correct'     - Confirm the last match was right
 'wrong'       - Report the last match as wrong
 'clear cache' - Drop cached match results
 'export'      - Export session history
 'help'        - Show help
 'exit'        - Exit
==============================================================
""")


def format_result(result: Dict, debug: bool = False) -> str:
    """Format a match result for the terminal"""
    if result.get("found"):
        confidence = result.get("confidence", 0.0)
        confidence_emoji = "🟢" if confidence >= 0.8 else "🟡" if confidence >= 0.6 else "🟠"
        fallback_note = " [fallback]" if result.get("is_fallback") else ""
        answers = "\n".join(f"   ✔ {answer}" for answer in result.get("correct_answers", []))

        output = f"""
{confidence_emoji} Match Found (Confidence: {confidence:.1%}, {result.get('confidence_level')}){fallback_note}

📝 Matched: {result.get('matched_question', 'Unknown')}
🎯 Strategy: {result.get('strategy', 'Unknown')}
💡 Recommendation: {result.get('recommendation', 'Unknown')}
📋 Correct answers:
{answers}
🔦 Highlight options: {[i + 1 for i in result.get('highlight_indices', [])]}
"""
    else:
        output = f"""
❌ No Match Found

💭 Message: {result.get('message', 'No matching question found.')}
"""
        if result.get("rejection_reasons"):
            output += f"🚫 Rejected because: {', '.join(result['rejection_reasons'])}\n"

    if debug and result.get("trace"):
        trace = result["trace"]
        output += "\n🔧 Strategy attempts:\n"
        for attempt in trace.get("attempts", []):
            best = attempt.get("best_confidence")
            best_text = f"{best:.3f}" if best is not None else "-"
            output += (f"   • {attempt['strategy']}: {attempt['status']} "
                       f"(best {best_text}, {attempt['elapsed_ms']:.1f}ms)\n")
        if trace.get("rejections"):
            output += f"   • Rejected candidates: {len(trace['rejections'])}\n"
    return output


def handle_command(command: str, session: InteractiveSession, debug: bool) -> tuple:
    """Handle special commands; returns (debug, should_continue)"""
    command = command.lower().strip()
    service = session.service

    if command == "stats":
        stats = session.get_session_stats()
        print(f"""
📊 Session Statistics:
   • Duration: {stats['session_duration']}
   • Total Questions: {stats['total_questions']}
   • Matched: {stats['matched_questions']}
   • Match Rate: {stats['match_rate']}
   • Avg Match Time: {stats['avg_match_time']}
   • Cache Hit Rate: {stats['cache_hit_rate']}
""")
        return debug, True

    elif command == "system":
        system_stats = service.get_system_stats()
        print(f"""
🖥️  System Information:
   • Initialized: {service.initialized}
   • Corpus Entries: {system_stats.get('corpus_entries', 0)}
   • Courses: {system_stats.get('courses', 0)}
   • Feedback Records: {system_stats.get('feedback_records', 0)}
""")
        return debug, True

    elif command == "history":
        if not session.question_history:
            print("📝 No questions in current session")
        else:
            print(f"📋 Question History ({len(session.question_history)} questions):")
            for i, item in enumerate(session.question_history[-10:], 1):
                status = "✅" if item["found"] else "❌"
                print(f"   {i}. {status} {item['question'][:50]} ({item['confidence']:.1%})")
        return debug, True

    elif command.startswith("debug"):
        if "on" in command:
            print("🔧 Debug mode enabled")
            return True, True
        elif "off" in command:
            print("🔇 Debug mode disabled")
            return False, True
        print(f"🔧 Debug mode is currently {'ON' if debug else 'OFF'}")
        return debug, True

    elif command in ("correct", "wrong"):
        last = session.last_result
        if not last or not last.get("found"):
            print("⚠️  No match to give feedback on")
            return debug, True
        record = service.record_feedback(session.last_question, last["entry_key"], command == "correct")
        print(f"👍 Feedback saved ({record['correct_count']} correct, {record['incorrect_count']} wrong)")
        return debug, True

    elif command == "clear cache":
        service.clear_cache()
        print("🧹 Match cache cleared")
        return debug, True

    elif command == "export":
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"session_export_{timestamp}.json"
        export_data = {
            "session_info": session.get_session_stats(),
            "question_history": session.question_history,
            "exported_at": datetime.now().isoformat()
        }
        try:
            with open(filename, 'w', encoding='utf-8') as f:
                json.dump(export_data, f, ensure_ascii=False, indent=2)
            print(f"💾 Session exported to: {filename}")
        except Exception as e:
            print(f"❌ Export failed: {e}")
        return debug, True

    elif command.startswith("help"):
        print_banner()
        return debug, True

    elif command in ["exit", "quit", "q"]:
        return debug, False

    print(f"❓ Unknown command: {command}")
    print("Type 'help' for available commands")
    return debug, True


def main():
    service = QuizMatchService()
    session = InteractiveSession(service)
    if HAS_READLINE:
        session.setup_readline()
    debug_mode = False

    print_banner()
    print("🔄 Initializing quiz match service...")
    if not service.initialize():
        print("❌ Failed to initialize quiz match service")
        return
    print(f"✅ Ready with {service.get_system_stats().get('corpus_entries', 0)} corpus entries")
    print("=" * 50)

    while True:
        try:
            debug_indicator = " (debug)" if debug_mode else ""
            try:
                user_input = input(f"🔍 Question{debug_indicator} » ").strip()
            except EOFError:
                print("\n👋 Goodbye!")
                break

            if not user_input:
                continue

            if user_input.lower().startswith(COMMANDS):
                debug_mode, should_continue = handle_command(user_input, session, debug_mode)
                if not should_continue:
                    break
                continue

            options = parse_options(input("   Options (a | b | c) » "))
            start_time = time.time()
            result = service.answer_question(user_input, options, debug=debug_mode)
            duration = time.time() - start_time
            session.add_question(user_input, result, duration)

            print(format_result(result, debug_mode))
            print("=" * 50)

        except KeyboardInterrupt:
            print("\n\n⏸️  Interrupted. Type 'exit' to quit or continue with another question.")
            continue
        except EOFError:
            print("\n👋 Goodbye!")
            break

    service.close()
    stats = session.get_session_stats()
    print(f"""
📊 Session Summary:
   • Duration: {stats['session_duration']}
   • Questions Processed: {stats['total_questions']}
   • Match Rate: {stats['match_rate']}
""")


if __name__ == "__main__":
    main()
